import threading

from payflow.services.background import BackgroundDispatcher, InlineDispatcher


class TestBackgroundDispatcher:
    def test_runs_submitted_work(self):
        dispatcher = BackgroundDispatcher(max_workers=2)
        try:
            future = dispatcher.submit("add", lambda a, b: a + b, 2, 3)
            assert future.result(timeout=5) == 5
        finally:
            dispatcher.shutdown(wait=True)

    def test_runs_off_the_calling_thread(self):
        dispatcher = BackgroundDispatcher(max_workers=1)
        try:
            future = dispatcher.submit("whoami", lambda: threading.current_thread().name)
            assert future.result(timeout=5).startswith("payflow-bg")
        finally:
            dispatcher.shutdown(wait=True)

    def test_task_failure_is_logged_not_raised(self, caplog):
        dispatcher = BackgroundDispatcher(max_workers=1)

        def explode():
            raise RuntimeError("webhook down")

        try:
            future = dispatcher.submit("explode", explode)
            future.exception(timeout=5)
        finally:
            dispatcher.shutdown(wait=True)

        assert any("Task explode failed: webhook down" in r.getMessage() for r in caplog.records)

    def test_submit_after_shutdown_is_dropped(self):
        dispatcher = BackgroundDispatcher(max_workers=1)
        dispatcher.shutdown(wait=True)
        assert dispatcher.submit("late", lambda: None) is None


class TestInlineDispatcher:
    def test_runs_synchronously(self):
        seen = []
        InlineDispatcher().submit("record", seen.append, "x")
        assert seen == ["x"]

    def test_swallows_failures(self):
        def explode():
            raise RuntimeError("boom")

        future = InlineDispatcher().submit("explode", explode)
        assert isinstance(future.exception(), RuntimeError)
