"""
Room data model: voices, roster entries and beat events
Everything here is plain JSON-shaped data so it can be persisted and sent as-is
"""
from typing import Dict, Iterable, List, TypedDict

# Fixed voice set, in the order free voices are handed out
VOICES = ("kick", "hihat", "snare", "cowbell")


class Participant(TypedDict):
    name: str
    assignedSound: str


class BeatEvent(TypedDict):
    beat: int
    sound: str


def group_by_voice(events: Iterable[BeatEvent]) -> Dict[str, List[BeatEvent]]:
    """Group a flat timeline by voice, keeping submission order within each voice"""
    grouped: Dict[str, List[BeatEvent]] = {}
    for event in events:
        grouped.setdefault(event["sound"], []).append(event)
    return grouped
