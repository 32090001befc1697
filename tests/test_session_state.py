import pytest

from cofacilitator.session.state import TranscriptState, clean_line


def test_clean_line_collapses_whitespace() -> None:
    assert clean_line("  hello \n\t world  ") == "hello world"
    assert clean_line(None) == ""
    assert clean_line(42) == ""


def test_window_keeps_last_three_in_order() -> None:
    state = TranscriptState()
    for i in range(1, 6):
        state.append_line(f"line {i}")
        assert len(state.window) <= 3
    assert state.window == ["line 3", "line 4", "line 5"]


def test_reset_clears_window() -> None:
    state = TranscriptState()
    state.append_line("a")
    state.reset()
    assert state.window == []
    assert state.epoch == 1


def test_late_results_do_not_survive_reset() -> None:
    state = TranscriptState()
    state.append_line("before", epoch=0)
    pending = [(0, "stale one"), (0, "stale two")]

    state.reset()
    state.append_line("fresh", epoch=1)
    # Results of chunks recorded before the reset arrive after it.
    for epoch, text in pending:
        assert state.append_line(text, epoch=epoch) is False

    assert state.window == ["fresh"]


def test_newer_epoch_of_same_run_starts_a_new_window() -> None:
    viewer = TranscriptState()
    viewer.append_line("before toggle", epoch=0, run_id="run-a")
    assert viewer.append_line("after toggle", epoch=2, run_id="run-a") is True
    assert viewer.window == ["after toggle"]
    assert viewer.epoch == 2
    assert viewer.append_line("late", epoch=1, run_id="run-a") is False


def test_restarted_presenter_is_followed_from_its_first_epoch() -> None:
    viewer = TranscriptState()
    assert viewer.append_line("run A", epoch=5, run_id="run-a") is True

    # A restarted presenter counts epochs from zero again under a new run id.
    for i in range(1, 5):
        assert viewer.append_line(f"run B line {i}", epoch=1, run_id="run-b") is True

    assert viewer.window == ["run B line 2", "run B line 3", "run B line 4"]
    assert viewer.current_run == "run-b"
    assert viewer.epoch == 1
    # Stragglers from the old process are dropped.
    assert viewer.append_line("run A straggler", epoch=5, run_id="run-a") is False
    assert viewer.window[-1] == "run B line 4"


def test_own_run_id_is_fixed_per_state() -> None:
    presenter = TranscriptState()
    run_id = presenter.run_id
    presenter.reset()
    presenter.reset()
    assert presenter.run_id == run_id
    assert TranscriptState().run_id != run_id


def test_reset_takes_the_window_back_from_another_run() -> None:
    presenter = TranscriptState()
    presenter.append_line("other presenter", epoch=3, run_id="elsewhere")

    presenter.reset()

    assert presenter.current_run == presenter.run_id
    assert presenter.append_line("mine", epoch=presenter.epoch, run_id=presenter.run_id) is True
    assert presenter.append_line("theirs", epoch=9, run_id="elsewhere") is False
    assert presenter.window == ["mine"]


def test_untagged_lines_are_always_accepted() -> None:
    state = TranscriptState()
    state.reset()
    assert state.append_line("no epoch") is True
    assert state.window == ["no epoch"]


@pytest.mark.parametrize(
    "value, expected",
    [(0.3, 0.0), (-1.5, -1.0), (-0.5, -0.5), (0.0, 0.0), (-1.0, -1.0)],
)
def test_threshold_is_clamped(value: float, expected: float) -> None:
    state = TranscriptState()
    assert state.set_threshold(value) == expected
    assert state.threshold == expected


def test_threshold_sequence_stays_in_range() -> None:
    state = TranscriptState()
    state.set_threshold(0.3)
    assert state.threshold == 0.0
    state.set_threshold(-1.5)
    assert state.threshold == -1.0


def test_default_threshold() -> None:
    assert TranscriptState().threshold == -0.8


def test_window_bookmark_joins_lines() -> None:
    state = TranscriptState(clock=lambda: 100.0)
    state.append_line("first")
    state.append_line("second")
    bookmark = state.bookmark_window()
    assert bookmark.text == "first second"
    assert bookmark.timestamp == 100.0
    assert state.bookmarks == [bookmark]


def test_bookmark_timestamps_never_decrease() -> None:
    times = iter([10.0, 5.0, 12.0])
    state = TranscriptState(clock=lambda: next(times))
    stamps = [state.add_bookmark(str(i)).timestamp for i in range(3)]
    assert stamps == [10.0, 10.0, 12.0]


def test_answer_bookmark() -> None:
    state = TranscriptState()
    assert state.bookmark_answer(None) is None
    assert state.bookmark_answer("42").text == "42"
    assert len(state.bookmarks) == 1
