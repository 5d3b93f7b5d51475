"""Deterministic stand-ins for the main loop, runner, widget and transports."""


class FakeMainContext:
    """Deterministic main context: inline invoke, queued call_soon, manual clock."""

    def __init__(self):
        self.queue = []
        self.timers = []
        self.now = 0.0

    def is_main_thread(self):
        return True

    def invoke(self, fn, *args):
        fn(*args)

    def call_soon(self, fn, *args):
        self.queue.append((fn, args))

    def call_later(self, delay, fn, *args):
        self.timers.append((self.now + delay, fn, args))

    def run_sync(self, fn):
        return fn()

    def run_pending(self):
        while self.queue:
            fn, args = self.queue.pop(0)
            fn(*args)

    def advance(self, seconds):
        self.now += seconds
        due = sorted((t for t in self.timers if t[0] <= self.now), key=lambda t: t[0])
        self.timers = [t for t in self.timers if t[0] > self.now]
        for _, fn, args in due:
            fn(*args)
        self.run_pending()


class FakeRunner:
    """Collects background jobs; tests decide when and in which order they run."""

    def __init__(self):
        self.jobs = []

    def run(self, fn, *args):
        self.jobs.append((fn, args))

    def run_job(self, index=0):
        fn, args = self.jobs.pop(index)
        fn(*args)

    def run_all(self):
        while self.jobs:
            self.run_job()


class RecordingWidget:
    """Lock-screen widget that remembers everything pushed to it."""

    def __init__(self):
        self.infos = []
        self.states = []

    @property
    def info(self):
        return self.infos[-1] if self.infos else None

    @property
    def state(self):
        return self.states[-1] if self.states else None

    def set_now_playing_info(self, info):
        self.infos.append(info)

    def set_playback_state(self, state):
        self.states.append(state)


class RecordingTransport:
    """Channel transport that records outbound calls and lets tests reply."""

    def __init__(self):
        self.calls = []

    def send(self, channel, method, arguments, reply):
        self.calls.append((channel, method, arguments, reply))

    def methods(self):
        return [call[1] for call in self.calls]

    def last(self, method):
        for call in reversed(self.calls):
            if call[1] == method:
                return call
        raise AssertionError(f"{method} was never called")

    def reply(self, method, result):
        _, _, _, callback = self.last(method)
        callback(result)


class FakeListener:
    def __init__(self, on_ready, on_failed, start_error=None):
        self.on_ready = on_ready
        self.on_failed = on_failed
        self.start_error = start_error
        self.started = False
        self.cancelled = 0

    def start(self):
        self.started = True
        if self.start_error is not None:
            raise self.start_error

    def cancel(self):
        self.cancelled += 1


class FakeListenerFactory:
    def __init__(self):
        self.listeners = []
        self.start_error = None

    def __call__(self, on_ready, on_failed):
        listener = FakeListener(on_ready, on_failed, self.start_error)
        self.listeners.append(listener)
        return listener

    @property
    def current(self):
        return self.listeners[-1]


class FakeResponse:
    def __init__(self, content=b'', status_error=None):
        self.content = content
        self._status_error = status_error

    def raise_for_status(self):
        if self._status_error is not None:
            raise self._status_error


def png_bytes(color=(255, 0, 0), size=(4, 4)):
    """Encoded PNG payload of a solid-color image."""
    from io import BytesIO
    from PIL import Image
    buf = BytesIO()
    Image.new('RGB', size, color).save(buf, format='PNG')
    return buf.getvalue()

