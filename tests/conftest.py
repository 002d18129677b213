"""Shared fixtures: an in-memory transport and a manually ticked poll scheduler."""

import os
import shutil

import pytest

from cloudconvert.config import Configuration
from cloudconvert.process import ConversionJob
from cloudconvert.utils.storage import LocalStorage

PROCESS_URL = "//host123d1.cloudconvert.com/process/abc123"
UPLOAD_URL = "//host123d1.cloudconvert.com/upload/~abc123"
OUTPUT_URL = "//host123d1.cloudconvert.com/download/~abc123"


class FakeOperation:
    """Transport operation completed explicitly by the test."""

    def __init__(self, method, url, params=None, on_complete=None, on_progress=None,
                 file_path=None, destination_resolver=None):
        self.method = method
        self.url = url
        self.params = params
        self.on_complete = on_complete
        self.on_progress = on_progress
        self.file_path = file_path
        self.destination_resolver = destination_resolver
        self.name = f"{method} {url}"
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True
        return self

    def cancel(self):
        self.cancelled = True

    def progress(self, transferred, total):
        if not self.cancelled and self.on_progress is not None:
            self.on_progress(self, transferred, total)

    def complete(self, result=None, error=None, force=False):
        """Deliver the result. A cancelled operation stays silent unless forced."""
        if self.cancelled and not force:
            return
        if self.on_complete is not None:
            self.on_complete(self, result, error)

    def finish_download(self, temporary_path, filename):
        destination = self.destination_resolver(str(temporary_path), filename)
        if os.path.abspath(destination) != os.path.abspath(str(temporary_path)):
            shutil.move(str(temporary_path), destination)
        self.complete(destination)
        return destination


class FakeTransport:
    """Records every operation instead of talking HTTP."""

    def __init__(self):
        self.operations = []

    def request(self, method, url, params=None, on_complete=None):
        operation = FakeOperation(method, url, params=params, on_complete=on_complete)
        self.operations.append(operation)
        return operation

    def upload(self, url, file_path, params=None, on_progress=None, on_complete=None):
        operation = FakeOperation("PUT", url, params=params, on_complete=on_complete,
                                  on_progress=on_progress, file_path=file_path)
        self.operations.append(operation)
        return operation

    def download(self, url, destination_resolver, on_progress=None, on_complete=None):
        operation = FakeOperation("DOWNLOAD", url, on_complete=on_complete, on_progress=on_progress,
                                  destination_resolver=destination_resolver)
        self.operations.append(operation)
        return operation

    @property
    def last(self):
        return self.operations[-1]

    def by_method(self, method):
        return [operation for operation in self.operations if operation.method == method]


class FakeScheduler:
    """Poll scheduler ticked by hand."""

    def __init__(self, name="poll"):
        self.name = name
        self.interval = None
        self.callback = None
        self.is_running = False
        self.stopped = False

    def start(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.is_running = True

    def stop(self):
        self.stopped = True
        self.is_running = False

    def tick(self):
        if self.is_running and not self.stopped:
            self.callback()


class SchedulerFactory:
    def __init__(self):
        self.instances = []

    def __call__(self, name="poll"):
        scheduler = FakeScheduler(name)
        self.instances.append(scheduler)
        return scheduler

    @property
    def last(self):
        return self.instances[-1]


class ProgressRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, step, percent, message):
        self.events.append((step, percent, message))

    @property
    def steps(self):
        return [event[0] for event in self.events]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def scheduler_factory():
    return SchedulerFactory()


@pytest.fixture
def progress():
    return ProgressRecorder()


@pytest.fixture
def config():
    return Configuration(api_key="test-key", api_host="api.example.com")


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(base_path=tmp_path / "Documents")


@pytest.fixture
def job(config, transport, storage, scheduler_factory, progress):
    return ConversionJob(
        config=config,
        transport=transport,
        storage=storage,
        progress_handler=progress,
        scheduler_factory=scheduler_factory,
    )


def create_job(job, transport):
    """Drive `job` to CREATED."""
    job.create({"inputformat": "png", "outputformat": "pdf"})
    transport.last.complete({"url": PROCESS_URL, "id": "abc123"})
    return job


def start_job(job, transport):
    """Drive `job` to CONVERTING without an upload."""
    create_job(job, transport)
    job.start({"input": "download", "file": "https://example.com/file.png"})
    transport.last.complete({"url": PROCESS_URL, "step": "convert", "percent": 0})
    return job


def finish_job(job, transport, scheduler_factory, output=None):
    """Drive `job` to FINISHED through wait() and one refresh."""
    start_job(job, transport)
    job.wait()
    scheduler_factory.last.tick()
    transport.last.complete({
        "url": PROCESS_URL,
        "step": "finished",
        "percent": 100,
        "message": "Conversion finished!",
        "output": output if output is not None else {"url": OUTPUT_URL, "filename": "file.pdf"},
    })
    return job
