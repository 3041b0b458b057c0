"""
Connection ids and request/message parsing
"""
import json
import random
import string
from typing import Any, List, Sequence

from .state import VOICES, BeatEvent


class MalformedRequest(ValueError):
    """Join body or channel message could not be understood"""


def generate_connection_id(length: int = 9) -> str:
    """Generate a random connection ID"""
    alphabet = string.ascii_lowercase + string.digits
    return "conn_" + "".join(random.choice(alphabet) for _ in range(length))


def parse_join_request(data: Any) -> str:
    """Return the participant name from a decoded join body"""
    if not isinstance(data, dict):
        raise MalformedRequest("join body must be a JSON object")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise MalformedRequest("name must be a non-empty string")
    return name


def parse_segment(text: str, voices: Sequence[str] = VOICES) -> List[BeatEvent]:
    """
    Decode a channel message into a single-voice segment

    The message must be a JSON array of {beat, sound} objects, all with the
    same sound. An empty array is valid and decodes to an empty segment.
    """
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise MalformedRequest(f"invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise MalformedRequest("segment must be a JSON array")

    events: List[BeatEvent] = []
    for item in data:
        if not isinstance(item, dict):
            raise MalformedRequest("segment entries must be objects")
        beat = item.get("beat")
        sound = item.get("sound")
        # bool is an int subclass
        if not isinstance(beat, int) or isinstance(beat, bool) or beat < 0:
            raise MalformedRequest(f"bad beat: {beat!r}")
        if sound not in voices:
            raise MalformedRequest(f"unknown sound: {sound!r}")
        events.append({"beat": beat, "sound": sound})

    if len({event["sound"] for event in events}) > 1:
        raise MalformedRequest("segment mixes several sounds")

    return events
