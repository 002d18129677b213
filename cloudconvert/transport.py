"""
HTTP transport for the CloudConvert API, built on requests.

Every call returns an unstarted Operation. The caller keeps a reference,
starts it, and is notified through callbacks from a background thread:

    on_progress(operation, transferred, total)
    on_complete(operation, result, error)

A cancelled operation never reports progress again and never invokes its
completion callback.
"""

import os
import shutil
import tempfile
import threading
from email.message import Message
from typing import Any, Callable, Dict, Optional
from urllib.parse import unquote, urlparse

import requests

from cloudconvert.errors import CancelledByUser, CloudConvertError, ServerRejected, TransportFailure
from cloudconvert.utils.enhanced_logger import setup_enhanced_logging, log_with_context

logger = setup_enhanced_logging()

CHUNK_SIZE = 64 * 1024
QUERY_STRING_METHODS = ("GET", "DELETE")


def parse_api_response(response: requests.Response) -> Any:
    """
    Decode an API response.

    Returns:
        The decoded JSON body, or None for an empty 2xx body

    Raises:
        ServerRejected: Non-2xx status with an "error" or "message" field
        TransportFailure: Any other non-2xx status, or an undecodable 2xx body
    """
    try:
        data = response.json()
        decodable = True
    except ValueError:
        data = None
        decodable = False

    if not 200 <= response.status_code < 300:
        message = None
        if isinstance(data, dict):
            message = data.get("error") or data.get("message")
        if isinstance(message, str) and message:
            raise ServerRejected(message, status_code=response.status_code)
        raise TransportFailure(response.reason or "Unknown error", status_code=response.status_code)

    if not decodable:
        if not response.content:
            return None
        raise TransportFailure("Response could not be serialized", status_code=response.status_code)
    return data


def suggested_filename(response: requests.Response, url: str) -> Optional[str]:
    """Filename from Content-Disposition, else the last segment of the url path."""
    disposition = response.headers.get("Content-Disposition")
    if disposition:
        message = Message()
        message["content-disposition"] = disposition
        filename = message.get_filename()
        if filename:
            return os.path.basename(filename)

    last_segment = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
    return last_segment or None


class Operation:
    """A single background HTTP operation that can be cancelled."""

    def __init__(self, name: str, work: Callable, on_complete=None, on_progress=None):
        """
        Args:
            name: Description used in logs, e.g. "GET https://..."
            work: Callable receiving this operation and returning the result
            on_complete: Called as on_complete(operation, result, error)
            on_progress: Called as on_progress(operation, transferred, total)
        """
        self.name = name
        self._work = work
        self._on_complete = on_complete
        self._on_progress = on_progress

        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._response = None
        self._thread = None

    def start(self):
        with self._lock:
            if self._thread is not None:
                logger.warning(f"[Transport] {self.name} already started")
                return self
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def cancel(self):
        """Stop the operation; its callbacks will not fire anymore."""
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        with self._lock:
            response = self._response
        if response is not None:
            # Unblocks a streamed read in the worker thread
            response.close()
        log_with_context(logger, 'debug', '[Transport] Operation cancelled', operation=self.name)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check_cancelled(self):
        if self._cancelled.is_set():
            raise CancelledByUser()

    def attach_response(self, response):
        """Remember an open streamed response so cancel() can close it."""
        with self._lock:
            self._response = response
        if self._cancelled.is_set():
            response.close()
            raise CancelledByUser()

    def report_progress(self, transferred: int, total: Optional[int]):
        if self._on_progress is None or self._cancelled.is_set():
            return
        try:
            self._on_progress(self, transferred, total)
        except Exception as e:
            logger.error(f"[Transport] Progress callback failed for {self.name}: {e}", exc_info=True)

    def join(self, timeout=None):
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        result, error = None, None
        try:
            result = self._work(self)
        except CancelledByUser:
            log_with_context(logger, 'debug', '[Transport] Cancelled operation unwound', operation=self.name)
            return
        except CloudConvertError as e:
            error = e
        except requests.RequestException as e:
            error = TransportFailure(str(e))
        except OSError as e:
            # Unreadable upload source or a failed move of the download
            error = TransportFailure(str(e))
        except Exception as e:
            if not self._cancelled.is_set():
                logger.error(f"[Transport] Unexpected error in {self.name}: {e}", exc_info=True)
            error = CloudConvertError(str(e))

        if self._cancelled.is_set():
            log_with_context(logger, 'debug', '[Transport] Dropping result of cancelled operation', operation=self.name)
            return

        if error is not None:
            log_with_context(
                logger, 'debug', f'[Transport] {self.name} failed: {error}',
                error_type=type(error).__name__,
            )

        if self._on_complete is not None:
            try:
                self._on_complete(self, result, error)
            except Exception as e:
                logger.error(f"[Transport] Completion callback failed for {self.name}: {e}", exc_info=True)


class _ProgressFile:
    """File wrapper that reports read progress and aborts once cancelled."""

    def __init__(self, fileobj, total: int, operation: Operation):
        self._fileobj = fileobj
        self._total = total
        self._operation = operation
        self.transferred = 0

    def __len__(self):
        return self._total

    def read(self, size=-1):
        self._operation.check_cancelled()
        if size is None or size < 0:
            size = CHUNK_SIZE
        chunk = self._fileobj.read(size)
        if chunk:
            self.transferred += len(chunk)
            self._operation.report_progress(self.transferred, self._total)
        return chunk


class RequestsTransport:
    """Transport adapter issuing API calls through the configured requests.Session."""

    def __init__(self, config=None, chunk_size: int = CHUNK_SIZE):
        if config is None:
            from cloudconvert.config import default_config
            config = default_config
        self.config = config
        self.chunk_size = chunk_size

    def request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None, on_complete=None) -> Operation:
        """
        JSON API call. GET and DELETE send `params` as the query string,
        other methods as a JSON body.
        """
        method = method.upper()
        full_url = self.config.resolve_url(url)

        def work(operation):
            kwargs = {"timeout": self.config.timeout}
            if method in QUERY_STRING_METHODS:
                kwargs["params"] = params
            else:
                kwargs["json"] = params if params is not None else {}
            # Streamed so cancel() can close the connection while the body is pending
            response = self.config.session.request(method, full_url, stream=True, **kwargs)
            operation.attach_response(response)
            try:
                result = parse_api_response(response)
            finally:
                response.close()
            operation.check_cancelled()
            return result

        return Operation(f"{method} {full_url}", work, on_complete=on_complete)

    def upload(self, url: str, file_path, params: Optional[Dict[str, Any]] = None,
               on_progress=None, on_complete=None) -> Operation:
        """Stream a local file as the body of a PUT to a server-issued upload url."""
        full_url = self.config.resolve_url(url)

        def work(operation):
            total = os.path.getsize(file_path)
            operation.report_progress(0, total)
            with open(file_path, "rb") as fileobj:
                body = _ProgressFile(fileobj, total, operation)
                response = self.config.session.put(
                    full_url,
                    params=params,
                    data=body,
                    headers={"Content-Type": "application/octet-stream"},
                    timeout=self.config.timeout,
                )
            operation.check_cancelled()
            return parse_api_response(response)

        return Operation(f"PUT {full_url}", work, on_complete=on_complete, on_progress=on_progress)

    def download(self, url: str, destination_resolver: Callable, on_progress=None, on_complete=None) -> Operation:
        """
        Stream a file to a temporary location, then move it to
        destination_resolver(temporary_path, suggested_filename).
        The operation resolves with the final path.
        """
        full_url = self.config.resolve_url(url)

        def work(operation):
            response = self.config.session.get(full_url, stream=True, timeout=self.config.timeout)
            operation.attach_response(response)
            try:
                if not 200 <= response.status_code < 300:
                    parse_api_response(response)

                content_length = response.headers.get("Content-Length")
                total = int(content_length) if content_length and content_length.isdigit() else None
                filename = suggested_filename(response, full_url)
                return self._stream_to_destination(operation, response, total, filename, destination_resolver)
            finally:
                response.close()

        return Operation(f"GET {full_url}", work, on_complete=on_complete, on_progress=on_progress)

    def _stream_to_destination(self, operation, response, total, filename, destination_resolver):
        suffix = os.path.splitext(filename)[1] if filename else ""
        fd, temporary_path = tempfile.mkstemp(prefix="cloudconvert-", suffix=suffix)
        try:
            transferred = 0
            operation.report_progress(0, total)
            with os.fdopen(fd, "wb") as output:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    operation.check_cancelled()
                    if not chunk:
                        continue
                    output.write(chunk)
                    transferred += len(chunk)
                    operation.report_progress(transferred, total)
            operation.check_cancelled()

            destination = destination_resolver(temporary_path, filename)
            if os.path.abspath(destination) != os.path.abspath(temporary_path):
                shutil.move(temporary_path, destination)
            return str(destination)
        except BaseException:
            if os.path.exists(temporary_path):
                os.remove(temporary_path)
            raise
