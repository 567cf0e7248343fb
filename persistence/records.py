"""
Records returned by the persistence layer.

Query results never leave the repository as ORM objects or loose dicts:
each query converts its rows into one of these typed, immutable records.
The JSON blobs stored in the database (locations, map bounds) have their
own record types with explicit to_dict/from_dict conversions.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class LatLng:
    """A point on the globe, in degrees"""
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {'lat': self.lat, 'lng': self.lng}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LatLng':
        return cls(lat=float(data['lat']), lng=float(data['lng']))


@dataclass(frozen=True)
class MapBounds:
    """Bounding box of a map, used to derive the scoring scale"""
    min: LatLng
    max: LatLng

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {'min': self.min.to_dict(), 'max': self.max.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MapBounds':
        return cls(min=LatLng.from_dict(data['min']), max=LatLng.from_dict(data['max']))


@dataclass(frozen=True)
class RoundLocation:
    """Target location of a round, with the street view camera"""
    lat: float
    lng: float
    pano_id: Optional[str] = None
    heading: Optional[float] = None
    pitch: Optional[float] = None

    @property
    def position(self) -> LatLng:
        return LatLng(self.lat, self.lng)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lat': self.lat,
            'lng': self.lng,
            'panoId': self.pano_id,
            'heading': self.heading,
            'pitch': self.pitch,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoundLocation':
        return cls(
            lat=float(data['lat']),
            lng=float(data['lng']),
            pano_id=data.get('panoId'),
            heading=data.get('heading'),
            pitch=data.get('pitch'),
        )


# =========================================================================
# Inputs
# =========================================================================

@dataclass(frozen=True)
class GameSeed:
    """A game as announced by the game provider"""
    token: str
    map: str
    map_name: str
    bounds: MapBounds
    forbid_moving: bool = False
    forbid_panning: bool = False
    forbid_zooming: bool = False
    time_limit: Optional[int] = None  # seconds


@dataclass(frozen=True)
class GuessPayload:
    """Everything stored for a guess besides its round, user and time"""
    location: LatLng
    distance: float  # metres
    score: int
    color: Optional[str] = None
    flag: Optional[str] = None
    country: Optional[str] = None
    streak: int = 0


# =========================================================================
# Entities
# =========================================================================

@dataclass(frozen=True)
class UserRecord:
    id: str
    username: str
    flag: Optional[str] = None
    previous_guess: Optional[LatLng] = None
    last_location: Optional[LatLng] = None
    reset_at: int = 0  # epoch ms
    current_streak_id: Optional[str] = None


@dataclass(frozen=True)
class GameRecord:
    id: str
    map: str
    map_name: str
    bounds: MapBounds
    forbid_moving: bool
    forbid_panning: bool
    forbid_zooming: bool
    time_limit: Optional[int]
    created_at: int


@dataclass(frozen=True)
class RoundRecord:
    id: str
    game_id: str
    location: RoundLocation
    country: Optional[str]
    created_at: int


@dataclass(frozen=True)
class GuessRecord:
    id: str
    round_id: str
    user_id: str
    location: LatLng
    distance: float
    score: int
    streak: int
    created_at: int
    color: Optional[str] = None
    flag: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class StreakInfo:
    """A user's current streak and where it was last extended"""
    id: str
    count: int
    last_location: RoundLocation


# =========================================================================
# Leaderboards
# =========================================================================

@dataclass(frozen=True)
class RoundParticipant:
    guess_id: str
    user_id: str
    username: str
    color: Optional[str]
    flag: Optional[str]


@dataclass(frozen=True)
class RoundScore:
    """One row of a round leaderboard"""
    guess_id: str
    user_id: str
    username: str
    color: Optional[str]
    flag: Optional[str]
    location: LatLng
    streak: int
    distance: float
    score: int
    created_at: int


@dataclass(frozen=True)
class GameScore:
    """One row of a game leaderboard"""
    user_id: str
    username: str
    color: Optional[str]
    flag: Optional[str]
    streak: int
    rounds: int
    distance: float
    score: int


@dataclass(frozen=True)
class GameWinnerRecord:
    game_id: str
    user_id: str
    score: int


# =========================================================================
# Stats
# =========================================================================

@dataclass(frozen=True)
class UserStats:
    username: str
    flag: Optional[str]
    streak: int
    best_streak: int
    correct_guesses: int
    nb_guesses: int
    perfects: int
    mean_score: Optional[float]
    victories: int

    @property
    def correct_rate(self) -> Optional[float]:
        """Percentage of correct countries, None without guesses"""
        if self.nb_guesses == 0:
            return None
        return (self.correct_guesses / self.nb_guesses) * 100


@dataclass(frozen=True)
class StatLeader:
    """The channel leader for one stat"""
    id: str
    username: str
    value: int


@dataclass(frozen=True)
class GlobalStats:
    streak: Optional[StatLeader] = None
    victories: Optional[StatLeader] = None
    perfects: Optional[StatLeader] = None

    def is_empty(self) -> bool:
        return self.streak is None and self.victories is None and self.perfects is None
