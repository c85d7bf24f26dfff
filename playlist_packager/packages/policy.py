"""
Mood and category derivation for exported videos and playlists

Devices group visuals by mood and category, but the catalog has no such
fields; they are derived from playlist names. The derivation is a policy
object handed to the builder so installations can swap the heuristic.
"""

from typing import Iterable, Optional, Sequence, Tuple

from ..playlists.models import Playlist
from .models import Category, Mood


class MoodPolicy:
    """Base policy: everything is ambient background visuals"""

    default_mood = Mood.AMBIENT
    default_category = Category.BACKGROUND_VISUALS

    def mood_for(self, playlist_name: str) -> Mood:
        return self.default_mood

    def category_for(self, playlist_name: str) -> Category:
        return self.default_category

    def for_video(self, video_id: str, playlists: Sequence[Playlist]) -> Tuple[Mood, Category]:
        """
        Mood and category of a video from the first playlist containing it

        Videos outside every playlist get the defaults.
        """
        containing: Optional[Playlist] = next(
            (p for p in playlists if video_id in p.video_ids), None
        )
        if containing is None:
            return self.default_mood, self.default_category
        return self.mood_for(containing.name), self.category_for(containing.name)


def _contains_all(name: str, words: Iterable[str]) -> bool:
    return all(word in name for word in words)


class KeywordMoodPolicy(MoodPolicy):
    """
    Substring heuristic over the lowercased playlist name

    Mood:
        "high" and "energy"  -> high-energy
        "psychedelic"        -> psychedelic
        anything else        -> ambient
    Category:
        "performance" or "energy" or "psychedelic" -> performance_visuals
        anything else                              -> background_visuals
    """

    def mood_for(self, playlist_name: str) -> Mood:
        name = (playlist_name or "").lower()
        if _contains_all(name, ('high', 'energy')):
            return Mood.HIGH_ENERGY
        if 'psychedelic' in name:
            return Mood.PSYCHEDELIC
        return self.default_mood

    def category_for(self, playlist_name: str) -> Category:
        name = (playlist_name or "").lower()
        if any(word in name for word in ('performance', 'energy', 'psychedelic')):
            return Category.PERFORMANCE_VISUALS
        return self.default_category
