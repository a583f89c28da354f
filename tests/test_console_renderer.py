import json

from culture_interpreter.client.consumer import LaneSnapshot, LaneState
from culture_interpreter.client.reconstructor import ProgressiveReconstructor
from main import _ConsoleRenderer


RESULT = {
    "bottomLine": "They are asking for more time.",
    "culturalContext": "Deadlines are softened to save face.",
    "emotions": [{"name": "Worry", "senderScore": 5, "receiverScore": 2}],
}


def test_both_narrative_fields_are_typed_in_order(capsys):
    text = json.dumps(RESULT)
    reconstructor = ProgressiveReconstructor("inbound")
    renderer = _ConsoleRenderer(chars_per_tick=8)

    def snapshot():
        return LaneSnapshot(
            mode="inbound",
            state=LaneState.STREAMING,
            partial=dict(reconstructor.partial),
            live_text=dict(reconstructor.live_text),
        )

    for end in range(1, len(text) + 1, 3):
        reconstructor.update(text[:end])
        renderer(snapshot())
    reconstructor.update(text)
    for _ in range(30):
        renderer(snapshot())

    out = capsys.readouterr().out
    assert "bottomLine: They are asking for more time." in out
    assert "culturalContext: Deadlines are softened to save face." in out
    assert out.index("bottomLine:") < out.index("culturalContext:")
    assert "[emotions ready]" in out
