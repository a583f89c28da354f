import pytest

from culture_interpreter.client.typing_effect import TypingEffect


def test_reveals_growing_target_in_steps():
    effect = TypingEffect(chars_per_tick=3)

    assert effect.tick("Hello") == "Hel"
    assert effect.is_typing("Hello")
    assert effect.tick("Hello world") == "Hello "
    assert effect.tick("Hello world") == "Hello wor"
    assert effect.tick("Hello world") == "Hello world"
    assert not effect.is_typing("Hello world")


def test_new_target_restarts():
    effect = TypingEffect(chars_per_tick=4)
    effect.tick("abcdefgh")
    assert effect.tick("xyz") == "xyz"


def test_chars_per_tick_must_be_positive():
    with pytest.raises(ValueError):
        TypingEffect(chars_per_tick=0)
