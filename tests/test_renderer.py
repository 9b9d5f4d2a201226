import asyncio

import pytest

from services.renderer import CATCH_UP_INTERVAL, TYPING_INTERVAL, ProgressiveRenderer
from tests.conftest import wait_for


def drain(renderer, limit=1000):
    positions = []
    while renderer.next_delay() is not None and len(positions) < limit:
        positions.append(renderer.tick())
    return positions


class TestTicks:
    def test_types_one_character_while_streaming(self):
        renderer = ProgressiveRenderer()
        renderer.update("Hello", is_streaming=True)
        assert renderer.next_delay() == TYPING_INTERVAL
        assert renderer.tick() == 1
        assert renderer.visible_text == "H"

    def test_catches_up_five_characters_once_finished(self):
        renderer = ProgressiveRenderer()
        renderer.update("abcdefghijkl", is_streaming=False)
        assert renderer.next_delay() == CATCH_UP_INTERVAL
        assert drain(renderer) == [5, 10, 12]
        assert renderer.visible_text == "abcdefghijkl"
        assert renderer.next_delay() is None

    def test_cursor_never_decreases_while_text_grows(self):
        renderer = ProgressiveRenderer()
        text = ""
        positions = []
        for fragment in ["The ", "quick ", "brown ", "fox"]:
            text += fragment
            renderer.update(text, is_streaming=True)
            positions.append(renderer.tick())
            positions.append(renderer.tick())
        renderer.update(text, is_streaming=False)
        positions.extend(drain(renderer))
        assert positions == sorted(positions)
        assert positions[-1] == len(text)

    def test_shorter_text_snaps_cursor(self):
        renderer = ProgressiveRenderer()
        renderer.update("abcdefghij", is_streaming=False)
        drain(renderer)
        renderer.update("abc", is_streaming=False)
        assert renderer.revealed == 3
        assert renderer.visible_text == "abc"

    def test_reset_starts_from_the_beginning(self):
        renderer = ProgressiveRenderer()
        renderer.update("first reply", is_streaming=False)
        drain(renderer)
        renderer.reset("second", is_streaming=True)
        assert renderer.revealed == 0
        assert renderer.visible_text == ""


class TestCallbacks:
    def test_reveal_callback_per_increment(self):
        revealed = []
        renderer = ProgressiveRenderer(on_reveal=revealed.append)
        renderer.update("abc", is_streaming=True)
        drain(renderer)
        assert revealed == ["a", "ab", "abc"]

    def test_animation_state_follows_stream_and_cursor(self):
        changes = []
        renderer = ProgressiveRenderer(on_animation_state_change=changes.append)
        assert not renderer.is_animating

        renderer.update("", is_streaming=True)
        assert renderer.is_animating

        renderer.update("hi", is_streaming=False)
        assert renderer.is_animating

        drain(renderer)
        assert not renderer.is_animating
        assert changes == [True, False]

    def test_caught_up_while_streaming_is_still_animating(self):
        renderer = ProgressiveRenderer()
        renderer.update("ab", is_streaming=True)
        drain(renderer)
        assert renderer.next_delay() is None
        assert renderer.is_animating


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_run_reveals_everything(self):
        renderer = ProgressiveRenderer(typing_interval=0.001, catch_up_interval=0.001)
        task = asyncio.create_task(renderer.run())
        try:
            renderer.update("streamed", is_streaming=True)
            await wait_for(lambda: renderer.revealed >= 3)
            renderer.update("streamed text, all of it", is_streaming=False)
            await wait_for(lambda: not renderer.is_animating)
            assert renderer.visible_text == "streamed text, all of it"
        finally:
            renderer.close()
            await asyncio.wait_for(task, timeout=1)
