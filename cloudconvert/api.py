"""
High-level entry points: convert a file end to end, list conversion types.
"""

import os

from cloudconvert.errors import TransportFailure
from cloudconvert.process import ConversionJob
from cloudconvert.transport import RequestsTransport
from cloudconvert.utils.enhanced_logger import setup_enhanced_logging, log_with_context

logger = setup_enhanced_logging()


def _download_target(value):
    """
    Interpret the "download" conversion parameter.

    Returns:
        tuple: (download_path or None, whether to download at all)
    """
    if value is None or value is False:
        return None, False
    if value is True:
        return None, True
    if isinstance(value, os.PathLike):
        return value, True
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("", "false"):
            return None, False
        if lowered == "true":
            return None, True
        return value, True

    log_with_context(logger, 'warning', 'Ignoring unsupported download parameter', value_type=type(value).__name__)
    return None, False


def convert(parameters, progress_handler=None, completion_handler=None, listener=None,
            config=None, transport=None, **job_options):
    """
    Convert a file using the CloudConvert API.

    Runs create -> start (with upload) -> wait -> download without blocking
    and returns the job right away so the caller can cancel it.

    Args:
        parameters: Conversion parameters, e.g.
            {"inputformat": "png", "outputformat": "pdf", "input": "upload",
             "file": "/path/file.png", "download": True}.
            "download" may be True (default directory), a file or directory
            path, or False/absent to skip the download.
        progress_handler: Called as progress_handler(step, percent, message)
        completion_handler: Called as completion_handler(path, error). path is
            None when nothing was downloaded. Not called after cancel().
        listener: Optional ConversionListener
        config: Configuration, defaults to the process-wide one
        transport: Transport adapter override
        **job_options: Extra ConversionJob arguments (storage, poll_interval, ...)

    Returns:
        ConversionJob: The running job
    """
    job = ConversionJob(
        config=config,
        transport=transport,
        listener=listener,
        progress_handler=progress_handler,
        **job_options
    )
    download_path, should_download = _download_target(parameters.get("download"))

    def finish(path, error):
        if error is not None:
            log_with_context(
                logger, 'error', f'Conversion failed: {error}',
                job_url=job.url,
                error_type=type(error).__name__
            )
        if completion_handler is not None:
            completion_handler(path, error)

    def on_waited(error):
        if error is not None:
            finish(None, error)
        elif should_download:
            job.download(download_path, finish)
        else:
            finish(None, None)

    def on_started(error):
        if error is not None:
            finish(None, error)
        else:
            job.wait(on_waited)

    def on_created(error):
        if error is not None:
            finish(None, error)
        else:
            job.start(parameters, on_started)

    job.create(parameters, on_created)
    return job


def conversion_types(parameters, completion_handler, config=None, transport=None):
    """
    Find possible conversion types.

    Args:
        parameters: Filter, e.g. {"inputformat": "png"}.
            See https://cloudconvert.com/apidoc#types
        completion_handler: Called as completion_handler(types, error) where
            types is a list of dicts with "inputformat", "outputformat", ...

    Returns:
        Operation: The running request, can be cancelled
    """
    if transport is None:
        transport = RequestsTransport(config)

    def on_complete(operation, data, error):
        if error is None and isinstance(data, list):
            types = [entry for entry in data if isinstance(entry, dict)]
            completion_handler(types, None)
            return
        if error is None:
            error = TransportFailure("Unexpected conversion types response")
        log_with_context(logger, 'error', f'Failed to get conversion types: {error}', parameters=parameters)
        completion_handler(None, error)

    operation = transport.request("GET", "/conversiontypes", parameters, on_complete=on_complete)
    return operation.start()
