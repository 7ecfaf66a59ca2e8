import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))
from tubetunes.logging_config import InvalidSelectionError
from tubetunes.loop import EventLoop
from tubetunes.state import Target


class ScriptedKeys:
    """Hands out a fixed sequence of keys, then reports quit."""

    def __init__(self, keys):
        self.keys = list(keys)
        self.timeouts = []

    def read_key(self, timeout):
        self.timeouts.append(timeout)
        if not self.keys:
            return "q"
        return self.keys.pop(0)


def quit_on_q(key):
    return key != "q"


@pytest.fixture
def playing(controller, sample_tracks):
    controller.set_search_results("songs", sample_tracks)
    controller.play_search_result(0)
    return controller


class TestCompletionCheck:
    """Tests for the once-per-tick completion check."""

    def test_drains_during_grace_window(self, playing, fake_session):
        """Test that stale events right after a load are discarded."""
        fake_session.ended.append(True)
        loop = EventLoop(playing, ScriptedKeys([]), quit_on_q)
        loop.check_player()
        assert fake_session.drained == 1
        assert fake_session.ended == [True]
        assert playing.status.target == Target.search(0)

    def test_eof_after_grace_advances(self, playing, fake_session, clock):
        """Test auto-advance to the next track once the window has passed."""
        playing.toggle_pause()
        clock.advance(5)
        fake_session.ended.append(True)
        loop = EventLoop(playing, ScriptedKeys([]), quit_on_q)
        loop.check_player()
        assert playing.status.target == Target.search(1)
        assert playing.status.paused is False
        assert fake_session.commands[-1] == ("load", "https://www.youtube.com/watch?v=def67890")
        assert loop.status == "Auto-playing: Song B"

    def test_no_event_changes_nothing(self, playing, fake_session, clock):
        """Test a tick with nothing from the player."""
        clock.advance(5)
        loop = EventLoop(playing, ScriptedKeys([]), quit_on_q)
        loop.check_player()
        assert playing.status.target == Target.search(0)
        assert len(fake_session.commands) == 1

    def test_last_track_finishes(self, playing, fake_session, clock):
        """Test the end of the source leaves the controller idle."""
        playing.play_search_result(2)
        clock.advance(5)
        fake_session.ended.append(True)
        loop = EventLoop(playing, ScriptedKeys([]), quit_on_q)
        loop.check_player()
        assert playing.status.target is None
        assert loop.status == "Playback finished"

    def test_advance_callback(self, playing, fake_session, clock):
        """Test that the new track is handed to the advance callback."""
        clock.advance(5)
        fake_session.ended.append(True)
        advanced = []
        loop = EventLoop(playing, ScriptedKeys([]), quit_on_q, on_advance=advanced.append)
        loop.check_player()
        assert [t.title for t in advanced] == ["Song B"]

    def test_no_callback_when_finished(self, playing, fake_session, clock):
        """Test that running off the end does not report an advance."""
        playing.play_search_result(2)
        clock.advance(5)
        fake_session.ended.append(True)
        advanced = []
        EventLoop(playing, ScriptedKeys([]), quit_on_q, on_advance=advanced.append).check_player()
        assert advanced == []

    def test_idle_is_not_polled(self, controller, fake_session):
        """Test that nothing is read when nothing is playing."""
        fake_session.ended.append(True)
        EventLoop(controller, ScriptedKeys([]), quit_on_q).check_player()
        assert fake_session.ended == [True]
        assert fake_session.drained == 0

    def test_disconnected_is_not_polled(self, playing, fake_session, clock):
        """Test that a lost connection is not polled."""
        clock.advance(5)
        fake_session.connected = False
        fake_session.ended.append(True)
        EventLoop(playing, ScriptedKeys([]), quit_on_q).check_player()
        assert playing.status.target == Target.search(0)


class TestTicks:
    """Tests for key dispatch."""

    def test_timeout_continues(self, controller):
        """Test that no key means another tick."""
        seen = []
        loop = EventLoop(controller, ScriptedKeys([None]), lambda key: seen.append(key) or True)
        assert loop.tick()
        assert seen == []

    def test_keys_dispatched_until_quit(self, controller):
        """Test that run feeds keys until the handler says stop."""
        seen = []

        def handle(key):
            seen.append(key)
            return key != "q"

        keys = ScriptedKeys(["j", None, "k"])
        loop = EventLoop(controller, keys, handle, input_timeout=0.05)
        loop.run()
        assert seen == ["j", "k", "q"]
        assert not loop.running
        assert keys.timeouts == [0.05] * 4

    def test_render_only_when_dirty(self, controller):
        """Test that idle ticks do not redraw."""
        renders = []
        loop = EventLoop(controller, ScriptedKeys([None, None, "x"]), quit_on_q,
                         render=lambda: renders.append(1))
        loop.run()
        # Initial draw, then one after "x"
        assert len(renders) == 2

    def test_errors_become_status(self, controller):
        """Test that a failing key handler does not end the loop."""
        def handle(key):
            raise InvalidSelectionError("No track selected")

        loop = EventLoop(controller, ScriptedKeys(["a"]), handle)
        assert loop.tick()
        assert loop.status == "No track selected"

    def test_completion_checked_every_tick(self, playing, fake_session, clock):
        """Test that auto-advance happens while keys keep arriving."""
        clock.advance(5)
        fake_session.ended.append(True)
        loop = EventLoop(playing, ScriptedKeys(["j"]), quit_on_q)
        loop.tick()
        assert playing.status.target == Target.search(1)
