"""Controlled team alias tables used for entity resolution in post text."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class AliasEntry:
    canonical: str
    domain: str
    aliases: tuple[str, ...]


AliasTable = tuple[AliasEntry, ...]

NFL_TEAMS: dict[str, tuple[str, ...]] = {
    "Arizona Cardinals": ("Cardinals", "Arizona", "ARI", "Cards"),
    "Atlanta Falcons": ("Falcons", "Atlanta", "ATL"),
    "Baltimore Ravens": ("Ravens", "Baltimore", "BAL"),
    "Buffalo Bills": ("Bills", "Buffalo", "BUF"),
    "Carolina Panthers": ("Panthers", "Carolina", "CAR"),
    "Chicago Bears": ("Bears", "Chicago", "CHI"),
    "Cincinnati Bengals": ("Bengals", "Cincinnati", "CIN", "Cincy"),
    "Cleveland Browns": ("Browns", "Cleveland", "CLE"),
    "Dallas Cowboys": ("Cowboys", "Dallas", "DAL"),
    "Denver Broncos": ("Broncos", "Denver", "DEN"),
    "Detroit Lions": ("Lions", "Detroit", "DET"),
    "Green Bay Packers": ("Packers", "Green Bay", "GB"),
    "Houston Texans": ("Texans", "Houston", "HOU"),
    "Indianapolis Colts": ("Colts", "Indianapolis", "Indy", "IND"),
    "Jacksonville Jaguars": ("Jaguars", "Jacksonville", "Jax", "JAX"),
    "Kansas City Chiefs": ("Chiefs", "Kansas City", "KC"),
    "Las Vegas Raiders": ("Raiders", "Las Vegas", "Vegas", "LV", "LVR"),
    "Los Angeles Chargers": ("Chargers", "LA Chargers", "LAC"),
    "Los Angeles Rams": ("Rams", "LA Rams", "LAR"),
    "Miami Dolphins": ("Dolphins", "Miami", "MIA"),
    "Minnesota Vikings": ("Vikings", "Minnesota", "MIN"),
    "New England Patriots": ("Patriots", "New England", "NE", "Pats"),
    "New Orleans Saints": ("Saints", "New Orleans", "NO", "NOLA"),
    "New York Giants": ("Giants", "NY Giants", "NYG"),
    "New York Jets": ("Jets", "NY Jets", "NYJ"),
    "Philadelphia Eagles": ("Eagles", "Philadelphia", "Philly", "PHI"),
    "Pittsburgh Steelers": ("Steelers", "Pittsburgh", "PIT"),
    "San Francisco 49ers": ("49ers", "San Francisco", "SF", "Niners"),
    "Seattle Seahawks": ("Seahawks", "Seattle", "SEA"),
    "Tampa Bay Buccaneers": ("Buccaneers", "Tampa Bay", "Tampa", "TB", "Bucs"),
    "Tennessee Titans": ("Titans", "Tennessee", "TEN"),
    "Washington Commanders": ("Commanders", "Washington", "WAS", "WSH"),
}

NBA_TEAMS: dict[str, tuple[str, ...]] = {
    "Atlanta Hawks": ("Hawks", "Atlanta", "ATL"),
    "Boston Celtics": ("Celtics", "Boston", "BOS"),
    "Brooklyn Nets": ("Nets", "Brooklyn", "BKN"),
    "Charlotte Hornets": ("Hornets", "Charlotte", "CHA"),
    "Chicago Bulls": ("Bulls", "Chicago", "CHI"),
    "Cleveland Cavaliers": ("Cavaliers", "Cleveland", "CLE", "Cavs"),
    "Dallas Mavericks": ("Mavericks", "Dallas", "DAL", "Mavs"),
    "Denver Nuggets": ("Nuggets", "Denver", "DEN"),
    "Detroit Pistons": ("Pistons", "Detroit", "DET"),
    "Golden State Warriors": ("Warriors", "Golden State", "GSW", "Dubs"),
    "Houston Rockets": ("Rockets", "Houston", "HOU"),
    "Indiana Pacers": ("Pacers", "Indiana", "IND"),
    "LA Clippers": ("Clippers", "LA Clippers", "LAC"),
    "Los Angeles Lakers": ("Lakers", "LA Lakers", "LAL"),
    "Memphis Grizzlies": ("Grizzlies", "Memphis", "MEM", "Grizz"),
    "Miami Heat": ("Heat", "Miami", "MIA"),
    "Milwaukee Bucks": ("Bucks", "Milwaukee", "MIL"),
    "Minnesota Timberwolves": ("Timberwolves", "Minnesota", "MIN", "Wolves"),
    "New Orleans Pelicans": ("Pelicans", "New Orleans", "NOP", "NOLA"),
    "New York Knicks": ("Knicks", "New York", "NYK"),
    "Oklahoma City Thunder": ("Thunder", "Oklahoma City", "OKC"),
    "Orlando Magic": ("Magic", "Orlando", "ORL"),
    "Philadelphia 76ers": ("76ers", "Philadelphia", "PHI", "Sixers"),
    "Phoenix Suns": ("Suns", "Phoenix", "PHX"),
    "Portland Trail Blazers": ("Trail Blazers", "Portland", "POR", "Blazers"),
    "Sacramento Kings": ("Kings", "Sacramento", "SAC"),
    "San Antonio Spurs": ("Spurs", "San Antonio", "SAS"),
    "Toronto Raptors": ("Raptors", "Toronto", "TOR"),
    "Utah Jazz": ("Jazz", "Utah", "UTA"),
    "Washington Wizards": ("Wizards", "Washington", "WAS"),
}


def build_alias_table(
    groups: Iterable[tuple[str, Mapping[str, Iterable[str]]]],
) -> AliasTable:
    """Flatten `(domain, {canonical: aliases})` groups, keeping definition order."""
    entries: list[AliasEntry] = []
    for domain, teams in groups:
        for canonical, aliases in teams.items():
            cleaned = tuple(alias.strip() for alias in aliases if alias.strip())
            entries.append(AliasEntry(canonical=canonical, domain=domain, aliases=cleaned))
    return tuple(entries)


DEFAULT_ALIAS_TABLE: AliasTable = build_alias_table([("nfl", NFL_TEAMS), ("nba", NBA_TEAMS)])
