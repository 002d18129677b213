"""
Recurring timer that drives status refreshes while a job is converting.

Each scheduler owns one daemon thread. The stop flag is checked before every
firing, so no firing starts once stop() has returned. A firing that already
passed that check when stop() was called may still run its callback; callbacks
re-check their own state, as ConversionJob._poll_tick does under the job lock.
"""

import threading

from cloudconvert.utils.enhanced_logger import setup_enhanced_logging, log_with_context

logger = setup_enhanced_logging()


class PollScheduler:
    """
    Invokes a callback at a fixed interval until stopped.

    One scheduler is bound to one job and is used for a single polling run.
    """

    def __init__(self, name="poll"):
        """
        Initialize the scheduler.

        Args:
            name: Thread name, used in logs
        """
        self.name = name
        self.is_running = False
        self._stop_event = threading.Event()
        self._thread = None
        self._lock = threading.Lock()

    def start(self, interval, callback):
        """Start invoking `callback` every `interval` seconds in a background thread."""
        with self._lock:
            if self.is_running:
                logger.warning(f"[PollScheduler] {self.name} already running")
                return
            if self._stop_event.is_set():
                logger.warning(f"[PollScheduler] {self.name} was stopped and cannot be restarted")
                return

            self.is_running = True
            self._thread = threading.Thread(
                target=self._run,
                args=(interval, callback),
                name=self.name,
                daemon=True,
            )
            self._thread.start()
        log_with_context(logger, 'debug', '[PollScheduler] Started', scheduler=self.name, interval=interval)

    def stop(self):
        """
        Stop the timer. Safe to call repeatedly or before start().

        Does not wait for a callback already running; it may be called from
        inside the callback or while holding a lock the callback needs.
        """
        with self._lock:
            was_running = self.is_running
            self._stop_event.set()
            self.is_running = False
        if was_running:
            log_with_context(logger, 'debug', '[PollScheduler] Stopped', scheduler=self.name)

    @property
    def stopped(self):
        return self._stop_event.is_set()

    def _run(self, interval, callback):
        """Timer loop (runs in background thread)."""
        while not self._stop_event.wait(interval):
            if self._stop_event.is_set():
                break
            try:
                callback()
            except Exception as e:
                logger.error(f"[PollScheduler] {self.name} tick failed: {e}", exc_info=True)
