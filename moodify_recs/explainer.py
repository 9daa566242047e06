"""
Explanation Generator Module
============================

Human-readable text attached to a playlist:
- a short comfort line matched to the listener's tone or mood
- a per-track reason for tracks that arrived without one
"""

import random
from typing import Dict, List, Optional, Tuple

from .features import AudioFeatures, Track
from .scoring import ScoreBreakdown
from .taste import TasteProfile
from .vibe import MoodTargets, VibeSignals

COMFORT_MESSAGES: Dict[str, List[str]] = {
    "sad": [
        "It's okay to feel heavy. Let the music hold some of it for you.",
        "You're not alone. Take a breath and ease into these gentle tracks.",
        "Soft songs for a soft heart, one step at a time.",
        "For when words are hard, let melodies speak.",
        "Be kind to yourself today. Here's something tender.",
    ],
    "reflective": [
        "Quiet moments deserve quiet music.",
        "A little space to think, a little sound to feel.",
        "Slow rain, slow thoughts. Let it all flow.",
        "Breathe in, breathe out, and settle into the calm.",
        "Low lights, warm soundscape. You're safe here.",
    ],
    "focus": [
        "No rush. One page, one task, one track at a time.",
        "You've got this. Gentle focus, steady rhythm.",
        "Deep work mode is on. The noise can wait.",
        "Small progress is still progress. Keep going.",
        "Focus first, everything else later.",
    ],
    "nostalgic": [
        "A little time travel for the heart.",
        "Old feelings, new peace. Let's revisit gently.",
        "The past can be soft. Here's a warm rewind.",
        "Memories in stereo. Take it slow.",
        "Golden-hour echoes for tender recollection.",
    ],
    "angry": [
        "Turn it up. Let the volume carry the weight.",
        "Channel the fire. Burn clean, not out.",
        "Let it out, then let it go.",
        "Energy for the storm. Ride it, don't drown in it.",
        "Strong beats for strong feelings.",
    ],
    "celebratory": [
        "Good things deserve loud music.",
        "Joy has a volume. Let's turn it up.",
        "You made it. Now dance a little.",
        "Smiles, basslines and bright choruses.",
        "Let the room feel as alive as you do.",
    ],
    "chill": [
        "Cozy corners, warm sound. Settle in.",
        "Low tempo, high comfort.",
        "Soft lights and softer melodies.",
        "Sip something warm and exhale.",
        "This is your slow lane. Welcome.",
    ],
    "romantic": [
        "Something tender for the heart.",
        "Warm tones for warm feelings.",
        "Close your eyes and lean into it.",
        "For feelings that don't need many words.",
        "Soft rhythms for softer moments.",
    ],
    "energetic": [
        "Let the beat do the lifting.",
        "Momentum unlocked. Move how you want.",
        "Energy on, doubts off.",
        "Your pulse, but louder.",
        "Hype without the hassle. Go.",
    ],
    "generic": [
        "Here's a little soundtrack to carry you.",
        "A mix built for right now. Press play when you're ready.",
        "Lean into the moment. This one's tuned for you.",
        "Music that meets you where you are.",
        "Take what you need and leave the rest, track by track.",
    ],
}

_MOOD_BUCKETS = {
    "romantic": "romantic",
    "energetic": "energetic",
    "chill": "chill",
    "happy": "celebratory",
}


def comfort_bucket(signals: Optional[VibeSignals], mood: str) -> str:
    """Pick the message bucket; tone wins over mood, first match wins."""
    tone = signals.tone if signals else ""
    mood_key = (signals.mood if signals else mood or "").lower()
    if tone == "heartbroken" or mood_key == "sad":
        return "sad"
    if tone == "nostalgic":
        return "nostalgic"
    if tone == "focused" or mood_key == "focus":
        return "focus"
    if tone in ("angry", "celebratory", "reflective"):
        return tone
    return _MOOD_BUCKETS.get(mood_key, "generic")


def pick_comfort_message(
    signals: Optional[VibeSignals],
    mood: str,
    rng: Optional[random.Random] = None,
) -> str:
    """Random comfort line from the matching bucket."""
    rng = rng or random.Random()
    messages = COMFORT_MESSAGES.get(comfort_bucket(signals, mood)) or COMFORT_MESSAGES["generic"]
    return rng.choice(messages)


class ExplanationGenerator:
    """
    Explains why a track made the playlist.

    Focuses on:
    - the listener's own history when the track comes from it
    - how the track's sound lines up with the mood targets
    """

    def __init__(self):
        """Initialize explanation generator."""
        self.audio_descriptors = {
            "valence": {
                "high": "upbeat and positive",
                "low": "darker and more introspective",
                "match": "the right emotional tone",
            },
            "energy": {
                "high": "high energy",
                "low": "calm and mellow",
                "match": "matching energy",
            },
            "danceability": {
                "high": "great for dancing",
                "low": "laid-back groove",
                "match": "a similar groove",
            },
        }
        self.match_tolerance = 0.15

    def _history_reason(self, track: Track, taste: TasteProfile) -> Optional[str]:
        track_id = track.spotify_id
        if track_id and track_id in taste.top_track_ids:
            return "one of your top tracks"
        if track_id and track_id in taste.saved_track_ids:
            return "from your saved tracks"
        if track_id and track_id in taste.recent_track_ids:
            return "you played this recently"
        if any(a in taste.artist_ids for a in track.artist_ids):
            return "by an artist you listen to"
        return None

    def _sound_reason(self, features: AudioFeatures, targets: MoodTargets) -> Optional[str]:
        closest: Optional[Tuple[float, str]] = None
        for name, descriptor in self.audio_descriptors.items():
            value = getattr(features, name)
            target = getattr(targets, name)
            if value is None:
                continue
            diff = value - target
            if abs(diff) <= self.match_tolerance:
                text = descriptor["match"]
            else:
                text = descriptor["high"] if diff > 0 else descriptor["low"]
            if closest is None or abs(diff) < closest[0]:
                closest = (abs(diff), text)
        return closest[1] if closest else None

    def explain(
        self,
        track: Track,
        breakdown: ScoreBreakdown,
        features: Optional[AudioFeatures],
        taste: TasteProfile,
        targets: MoodTargets,
    ) -> str:
        """
        Short reason for one ranked track.

        Args:
            track: Ranked track
            breakdown: Its score breakdown
            features: Its audio features, if known
            taste: Listener profile
            targets: Resolved mood targets

        Returns:
            Comma-separated reason
        """
        reasons = []
        history = self._history_reason(track, taste)
        if history:
            reasons.append(history)
        if features is not None and breakdown.mood >= 0.5:
            sound = self._sound_reason(features, targets)
            if sound:
                reasons.append(sound)
        return ", ".join(reasons) if reasons else "discovery for your mood"
