from enum import Enum


class JobStatus(Enum):
    """Enum for conversion job status values."""

    # Local-only States
    UNSTARTED = "UNSTARTED"      # Job object exists, nothing sent to the API yet (initial state)
    CREATED = "CREATED"          # Process created on the API, url assigned

    # Active/Processing States
    STARTING = "STARTING"        # Start request in flight
    UPLOADING = "UPLOADING"      # Input file is being uploaded to the server-issued upload url
    CONVERTING = "CONVERTING"    # Server is converting, status is polled
    DOWNLOADING = "DOWNLOADING"  # Output file is being downloaded

    # Success States
    FINISHED = "FINISHED"        # Server reported step "finished", output ready for download

    # Failure States
    FAILED = "FAILED"            # A request failed or the server reported an error
    CANCELLED = "CANCELLED"      # Job was cancelled by the caller

    @property
    def is_terminal(self):
        return self in (JobStatus.FINISHED, JobStatus.FAILED, JobStatus.CANCELLED)
