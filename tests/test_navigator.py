"""Tests for client navigation and notices."""

from sitegate.client.navigator import Navigator
from sitegate.client.notifier import LoggingNotifier, RecordingNotifier


class TestNavigator:
    def test_redirect_moves_and_calls_hook(self):
        targets = []
        navigator = Navigator("/cart", on_redirect=targets.append)
        assert navigator.redirect("/login") is True
        assert navigator.current_path == "/login"
        assert targets == ["/login"]

    def test_redirect_to_current_location_is_noop(self):
        targets = []
        navigator = Navigator("/login/", on_redirect=targets.append)
        assert navigator.redirect("/login") is False
        assert navigator.history == []
        assert targets == []

    def test_reload(self):
        reloaded = []
        navigator = Navigator("/maintenance", on_reload=reloaded.append)
        navigator.reload()
        assert navigator.reload_count == 1
        assert reloaded == ["/maintenance"]

    def test_navigate_does_not_record_redirect(self):
        navigator = Navigator()
        navigator.navigate("/admin/users")
        assert navigator.is_at("/admin/users")
        assert navigator.history == []


class TestNotifiers:
    def test_recording_notifier(self):
        notifier = RecordingNotifier()
        notifier.notify("Resource not found.")
        notifier.notify("Saved", level="info")
        assert notifier.notices == [("error", "Resource not found."), ("info", "Saved")]
        assert notifier.messages == ["Resource not found.", "Saved"]

    def test_logging_notifier_does_not_raise(self):
        LoggingNotifier().notify("Server error. Please try again later.")
