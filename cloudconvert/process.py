"""
Lifecycle controller for a single conversion process on the CloudConvert API.

A ConversionJob walks through create -> start (optional upload) -> wait
(periodic refresh) -> optional download. At most one transport operation is
in flight per job. All state changes and observer notifications happen under
the job's lock, so once cancel() returns nothing more is reported for the job.
"""

import os
import threading
from functools import partial
from urllib.parse import quote

from cloudconvert.errors import InvalidState, OutputUnavailable, ServerRejected, TransportFailure
from cloudconvert.models import ProcessSnapshot
from cloudconvert.transport import RequestsTransport
from cloudconvert.utils.enhanced_logger import setup_enhanced_logging, log_with_context
from cloudconvert.utils.enums.job_status import JobStatus
from cloudconvert.utils.poll_scheduler import PollScheduler
from cloudconvert.utils.progress import (
    DOWNLOAD_STEP,
    UPLOAD_STEP,
    finished_progress,
    remote_progress,
    transfer_progress,
)
from cloudconvert.utils.storage import LocalStorage

logger = setup_enhanced_logging()

# Keys consumed by the client itself, never sent with the create request
TRANSFER_ONLY_KEYS = ("file", "download")

REFRESHABLE_STATUSES = (JobStatus.CREATED, JobStatus.CONVERTING)


class ConversionListener:
    """
    Observer of a ConversionJob. Subclass and override what you need.

    Callbacks run on the thread that completed the underlying request.
    """

    def conversion_progress(self, job, step, percent, message):
        """
        Progress of the current step.

        Args:
            job: The ConversionJob
            step: "upload", a server step (see https://cloudconvert.com/apidoc#status),
                "download" or "finished"
            percent: 0-100 as float, or None if unknown
            message: Description of the current progress
        """

    def conversion_completed(self, job, error):
        """Conversion completed on the server, before any download. `error` is None on success."""

    def conversion_file_downloaded(self, job, path):
        """Output file was downloaded to `path`."""


class _ProgressHandlerListener(ConversionListener):
    """Adapts a plain progress_handler(step, percent, message) callable."""

    def __init__(self, handler):
        self.handler = handler

    def conversion_progress(self, job, step, percent, message):
        self.handler(step, percent, message)


class ConversionJob:
    """One conversion process on the CloudConvert API."""

    def __init__(
        self,
        url=None,
        config=None,
        transport=None,
        storage=None,
        listener=None,
        progress_handler=None,
        poll_interval=None,
        scheduler_factory=PollScheduler,
    ):
        """
        Args:
            url: Url of an existing process; the job then starts as CREATED
            config: Configuration, defaults to the process-wide one
            transport: Transport adapter, defaults to RequestsTransport(config)
            storage: LocalStorage deciding download destinations
            listener: ConversionListener to notify
            progress_handler: Callable(step, percent, message)
            poll_interval: Seconds between refreshes while waiting
            scheduler_factory: Builds the PollScheduler used by wait()
        """
        if config is None:
            from cloudconvert.config import default_config
            config = default_config
        self.config = config
        self.transport = transport if transport is not None else RequestsTransport(config)
        self.storage = storage if storage is not None else LocalStorage(config.download_dir)
        self.poll_interval = poll_interval if poll_interval is not None else config.poll_interval
        self._scheduler_factory = scheduler_factory

        self._url = url
        self._status = JobStatus.CREATED if url else JobStatus.UNSTARTED
        self._snapshot = ProcessSnapshot()
        self._error = None

        self._active_operation = None
        self._poll_scheduler = None
        self._wait_handler = None
        self._upload_file = None
        self._remote_deleted = False

        self._listeners = []
        self._lock = threading.RLock()

        if listener is not None:
            self.add_listener(listener)
        if progress_handler is not None:
            self.add_progress_handler(progress_handler)

    # ------------------------------------------------------------------
    # Inspection

    @property
    def url(self):
        return self._url

    @property
    def status(self):
        return self._status

    @property
    def snapshot(self):
        return self._snapshot

    @property
    def error(self):
        """Error that failed the job, if any."""
        return self._error

    @property
    def active_operation(self):
        return self._active_operation

    @property
    def is_polling(self):
        return self._poll_scheduler is not None

    def __getitem__(self, name):
        return self._snapshot.get(name)

    def __repr__(self):
        return f"<ConversionJob {self._url or '(unsaved)'} {self._status.value}>"

    # ------------------------------------------------------------------
    # Observers

    def add_listener(self, listener):
        with self._lock:
            self._listeners.append(listener)
        return listener

    def add_progress_handler(self, handler):
        return self.add_listener(_ProgressHandlerListener(handler))

    def remove_listener(self, listener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, event, *args):
        for listener in list(self._listeners):
            callback = getattr(listener, event, None)
            if callback is None:
                continue
            try:
                callback(self, *args)
            except Exception as e:
                logger.error(f"[ConversionJob] Listener {event} failed: {e}", exc_info=True)

    def _emit_progress(self, progress):
        self._emit("conversion_progress", progress.step, progress.percent, progress.message)

    def _resolve(self, handler, *args):
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as e:
            logger.error(f"[ConversionJob] Completion handler failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # State helpers

    def _set_status(self, new_status, **context):
        old_status = self._status
        self._status = new_status
        log_with_context(
            logger, 'info', f'=== STATUS CHANGE: {old_status.value} -> {new_status.value} ===',
            job_url=self._url,
            **context
        )

    def _fail(self, error):
        self._error = error
        self._set_status(JobStatus.FAILED, error_type=type(error).__name__, error=str(error))

    def _set_url(self, url):
        if not url:
            return
        if self._url is None:
            self._url = url
        elif url != self._url:
            log_with_context(
                logger, 'warning', 'Ignoring process url change',
                job_url=self._url,
                new_url=url
            )

    def _update_snapshot(self, data):
        self._snapshot = ProcessSnapshot.from_json(data)
        self._set_url(self._snapshot.url)

    def _begin(self, operation):
        # Becomes the active operation before it can complete
        self._active_operation = operation
        operation.start()

    def _finish_operation(self, operation):
        """Clear `operation` if it is still the active one. False means it is stale."""
        if operation is not self._active_operation:
            log_with_context(
                logger, 'debug', 'Discarding stale operation result',
                job_url=self._url,
                operation=operation.name
            )
            return False
        self._active_operation = None
        return True

    def _reject(self, handler, message, *leading):
        log_with_context(logger, 'warning', message, job_url=self._url, status=self._status.value)
        self._resolve(handler, *leading, InvalidState(message))
        return self

    # ------------------------------------------------------------------
    # Create

    def create(self, parameters, completion_handler=None):
        """
        Create the process on the CloudConvert API.

        Args:
            parameters: See https://cloudconvert.com/apidoc#create. "file" and
                "download" are dropped from the request.
            completion_handler: Called with an error or None

        Returns:
            ConversionJob: self
        """
        with self._lock:
            if self._status is not JobStatus.UNSTARTED or self._active_operation is not None:
                return self._reject(completion_handler, f"Cannot create a process in state {self._status.value}")

            body = {key: value for key, value in parameters.items() if key not in TRANSFER_ONLY_KEYS}
            log_with_context(logger, 'info', 'Creating process', parameters=body)

            operation = self.transport.request(
                "POST", "/process", body,
                on_complete=partial(self._on_created, completion_handler=completion_handler),
            )
            self._begin(operation)
        return self

    def _on_created(self, operation, data, error, completion_handler=None):
        with self._lock:
            if not self._finish_operation(operation):
                return
            if error is None:
                snapshot = ProcessSnapshot.from_json(data)
                if not snapshot.url:
                    error = TransportFailure("Create response did not contain a process url")

            if error is not None:
                self._fail(error)
            else:
                self._snapshot = snapshot
                self._set_url(snapshot.url)
                self._set_status(JobStatus.CREATED)
            self._resolve(completion_handler, error)

    # ------------------------------------------------------------------
    # Start and upload

    def start(self, parameters, completion_handler=None):
        """
        Start the conversion.

        With parameters["input"] == "upload" and a "file" path, the file is
        uploaded to the upload url returned by the start request and the
        handler is called once the upload finished.

        Args:
            parameters: See https://cloudconvert.com/apidoc#start
            completion_handler: Called with an error or None

        Returns:
            ConversionJob: self
        """
        with self._lock:
            if self._url is None:
                return self._reject(completion_handler, "No Process URL!")
            if self._status is not JobStatus.CREATED or self._active_operation is not None:
                return self._reject(completion_handler, f"Cannot start a process in state {self._status.value}")

            body = dict(parameters)
            body.pop("download", None)

            upload_file = None
            file = body.get("file")
            if file is not None and body.get("input") == "upload":
                if not isinstance(file, (str, os.PathLike)):
                    return self._reject(completion_handler, f"Upload file must be a path, got {type(file).__name__}")
                upload_file = os.fspath(body.pop("file"))
            elif file is not None:
                body["file"] = os.fspath(file) if isinstance(file, os.PathLike) else str(file)
            self._upload_file = upload_file

            self._set_status(JobStatus.STARTING, upload=upload_file is not None)
            operation = self.transport.request(
                "POST", self._url, body,
                on_complete=partial(self._on_started, completion_handler=completion_handler),
            )
            self._begin(operation)
        return self

    def _on_started(self, operation, data, error, completion_handler=None):
        with self._lock:
            if not self._finish_operation(operation):
                return
            if error is not None:
                self._upload_file = None
                self._fail(error)
                self._resolve(completion_handler, error)
                return

            self._update_snapshot(data)

            if self._upload_file is None:
                self._set_status(JobStatus.CONVERTING)
                self._resolve(completion_handler, None)
                return

            upload_url = self._snapshot.upload_url
            if not upload_url:
                self._upload_file = None
                error = InvalidState("Start response did not contain an upload url")
                self._fail(error)
                self._resolve(completion_handler, error)
                return

            filename = os.path.basename(self._upload_file)
            target = f"{upload_url.rstrip('/')}/{quote(filename)}"
            self._set_status(JobStatus.UPLOADING, filename=filename)
            upload = self.transport.upload(
                target, self._upload_file,
                on_progress=self._on_upload_progress,
                on_complete=partial(self._on_uploaded, completion_handler=completion_handler),
            )
            self._begin(upload)

    def _on_upload_progress(self, operation, transferred, total):
        with self._lock:
            if operation is not self._active_operation:
                return
            self._emit_progress(transfer_progress(UPLOAD_STEP, transferred, total))

    def _on_uploaded(self, operation, data, error, completion_handler=None):
        with self._lock:
            if not self._finish_operation(operation):
                return
            self._upload_file = None
            if error is not None:
                self._fail(error)
            else:
                self._set_status(JobStatus.CONVERTING)
            self._resolve(completion_handler, error)

    # ------------------------------------------------------------------
    # Wait and refresh

    def wait(self, completion_handler=None):
        """
        Poll the process until the conversion finished.

        Args:
            completion_handler: Called with an error or None once the server
                reports "finished" or a refresh fails

        Returns:
            ConversionJob: self
        """
        with self._lock:
            if self._status is JobStatus.FINISHED:
                self._resolve(completion_handler, None)
                return self
            if self._status is JobStatus.FAILED:
                self._resolve(completion_handler, self._error)
                return self
            if self._status is not JobStatus.CONVERTING:
                return self._reject(completion_handler, f"Cannot wait for a process in state {self._status.value}")
            if self._poll_scheduler is not None:
                return self._reject(completion_handler, "Already waiting for this process")

            self._wait_handler = completion_handler
            scheduler = self._scheduler_factory(name=f"poll-{self._url.rstrip('/').rsplit('/', 1)[-1]}")
            self._poll_scheduler = scheduler
            scheduler.start(self.poll_interval, self._poll_tick)
            log_with_context(logger, 'info', 'Waiting for conversion', job_url=self._url, interval=self.poll_interval)
        return self

    def _poll_tick(self):
        with self._lock:
            if self._status is not JobStatus.CONVERTING or self._poll_scheduler is None:
                return
            if self._active_operation is not None:
                log_with_context(logger, 'debug', 'Skipping poll tick, refresh still in flight', job_url=self._url)
                return
            log_with_context(logger, 'debug', 'Poll tick', job_url=self._url)
            self.refresh()

    def refresh(self, parameters=None, completion_handler=None):
        """
        Refresh process data from the API.

        A refresh still in flight is cancelled; only the latest response is used.

        Args:
            parameters: Query string parameters
            completion_handler: Called with an error or None

        Returns:
            ConversionJob: self
        """
        with self._lock:
            if self._url is None:
                return self._reject(completion_handler, "No Process URL!")
            if self._status not in REFRESHABLE_STATUSES:
                return self._reject(completion_handler, f"Cannot refresh a process in state {self._status.value}")

            previous = self._active_operation
            if previous is not None:
                previous.cancel()

            operation = self.transport.request(
                "GET", self._url, parameters,
                on_complete=partial(self._on_refreshed, completion_handler=completion_handler),
            )
            self._begin(operation)
        return self

    def _on_refreshed(self, operation, data, error, completion_handler=None):
        with self._lock:
            if not self._finish_operation(operation):
                return

            if error is None:
                self._update_snapshot(data)
                self._emit_progress(remote_progress(self._snapshot))
                if self._snapshot.is_error:
                    error = ServerRejected(self._snapshot.message or "Conversion failed")

            completed = self._status is JobStatus.CONVERTING and (
                error is not None or self._snapshot.is_finished
            )
            if not completed:
                self._resolve(completion_handler, error)
                return

            if error is not None:
                self._fail(error)
            else:
                self._set_status(JobStatus.FINISHED, output_url=self._snapshot.output_url)

            scheduler, self._poll_scheduler = self._poll_scheduler, None
            if scheduler is not None:
                scheduler.stop()
            wait_handler, self._wait_handler = self._wait_handler, None

            self._emit("conversion_completed", error)
            self._resolve(completion_handler, error)
            self._resolve(wait_handler, error)

    # ------------------------------------------------------------------
    # Download

    def download(self, download_path=None, completion_handler=None):
        """
        Download the output file.

        Args:
            download_path: File or directory to save to. A directory gets the
                server's filename appended; None uses the storage's default
                directory. An existing file at the destination is replaced.
            completion_handler: Called with (path, error)

        Returns:
            ConversionJob: self
        """
        with self._lock:
            if self._status is not JobStatus.FINISHED:
                return self._reject(
                    completion_handler, f"Cannot download output of a process in state {self._status.value}", None
                )
            output_url = self._snapshot.output_url
            if not output_url:
                error = OutputUnavailable()
                log_with_context(logger, 'warning', str(error), job_url=self._url)
                self._resolve(completion_handler, None, error)
                return self

            self._set_status(JobStatus.DOWNLOADING, output_url=output_url)
            operation = self.transport.download(
                output_url,
                partial(self._download_destination, download_path),
                on_progress=self._on_download_progress,
                on_complete=partial(self._on_downloaded, completion_handler=completion_handler),
            )
            self._begin(operation)
        return self

    def _download_destination(self, download_path, temporary_path, suggested_filename):
        filename = suggested_filename or self._snapshot.output_filename
        return self.storage.resolve_destination(download_path, filename, temporary_path)

    def _on_download_progress(self, operation, transferred, total):
        with self._lock:
            if operation is not self._active_operation:
                return
            self._emit_progress(transfer_progress(DOWNLOAD_STEP, transferred, total))

    def _on_downloaded(self, operation, path, error, completion_handler=None):
        with self._lock:
            if not self._finish_operation(operation):
                return
            self._set_status(JobStatus.FINISHED)
            if error is not None:
                log_with_context(
                    logger, 'error', f'Download failed: {error}',
                    job_url=self._url,
                    error_type=type(error).__name__
                )
                self._resolve(completion_handler, None, error)
                return

            log_with_context(logger, 'info', 'Output file downloaded', job_url=self._url, path=path)
            self._emit_progress(finished_progress())
            self._resolve(completion_handler, path, None)
            self._emit("conversion_file_downloaded", path)

    # ------------------------------------------------------------------
    # Cancel

    def cancel(self):
        """
        Cancel the conversion, including any running upload or download,
        and delete the process from the API. Never raises.

        A FINISHED or FAILED job keeps its status; only the process is
        deleted from the API, once.

        Returns:
            ConversionJob: self
        """
        with self._lock:
            if self._status.is_terminal:
                if self._status is not JobStatus.CANCELLED and self._url is not None and not self._remote_deleted:
                    log_with_context(logger, 'info', 'Releasing process of a completed job', job_url=self._url,
                                     status=self._status.value)
                    self._delete_remote()
                return self

            operation, self._active_operation = self._active_operation, None
            scheduler, self._poll_scheduler = self._poll_scheduler, None
            self._wait_handler = None
            self._upload_file = None
            self._set_status(JobStatus.CANCELLED)

            if operation is not None:
                operation.cancel()
            if scheduler is not None:
                scheduler.stop()

            if self._url is not None:
                self._delete_remote()
        return self

    def _delete_remote(self):
        self._remote_deleted = True
        try:
            operation = self.transport.request("DELETE", self._url, on_complete=self._on_deleted)
            operation.start()
        except Exception as e:
            log_with_context(
                logger, 'warning', f'Could not delete process: {e}',
                job_url=self._url,
                error_type=type(e).__name__
            )

    def _on_deleted(self, operation, data, error):
        if error is not None:
            log_with_context(
                logger, 'warning', f'Best-effort process deletion failed: {error}',
                job_url=self._url,
                error_type=type(error).__name__
            )
        else:
            log_with_context(logger, 'info', 'Process deleted', job_url=self._url)
