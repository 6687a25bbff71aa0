"""Prometheus metrics for PFP (Parallel File Processor)"""

from prometheus_client import Counter, Gauge, Histogram


# ============================================================================
# File Metrics
# ============================================================================

files_processed_total = Counter(
    'pfp_files_processed_total',
    'Total number of files the command was dispatched for',
    ['status'],  # succeeded, failed, cancelled
)

file_duration_seconds = Histogram(
    'pfp_file_duration_seconds',
    'Time spent running the command for one file',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 3600.0],
    # 10ms to 1 hour - checksum-only runs up to large encrypted uploads
)


# ============================================================================
# Chunk & Pass Metrics
# ============================================================================

chunks_processed_total = Counter('pfp_chunks_processed_total', 'Total number of chunks processed')

passes_total = Counter('pfp_passes_total', 'Total number of completed passes over the input path')

pass_duration_seconds = Histogram(
    'pfp_pass_duration_seconds',
    'Wall-clock duration of a full pass',
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 3600.0, 14400.0, 86400.0],
)

last_pass_files = Gauge('pfp_last_pass_files', 'Number of files in the most recent pass', ['status'])


# ============================================================================
# Job Slot Metrics
# ============================================================================

job_slots = Gauge('pfp_job_slots', 'Configured number of job slots')

active_jobs = Gauge('pfp_active_jobs', 'Number of command invocations currently running')
