# src/services/matching/override_data.py

"""Curated override data for the title resolver.

Titles are written the way the catalogs spell them; ``OverrideTable``
normalizes keys and targets when the table is built.
"""

from __future__ import annotations

__all__ = ["MANUAL_OVERRIDES", "SKIP_TITLES", "YEAR_OVERRIDES"]

# Steam title -> HLTB title
MANUAL_OVERRIDES: dict[str, str] = {
    # Counter-Strike
    "CS:GO": "Counter-Strike: Global Offensive",
    "CSGO": "Counter-Strike: Global Offensive",
    # DOOM / Prey / Hitman reboots
    "DOOM": "DOOM (2016)",
    "DOOM 1993": "DOOM",
    "DOOM II": "DOOM II: Hell on Earth",
    "Prey": "Prey (2017)",
    "Prey 2006": "Prey",
    "HITMAN": "Hitman (2016)",
    "HITMAN 2": "Hitman 2 (2018)",
    "HITMAN 3": "Hitman 3 (2021)",
    # Call of Duty
    "Call of Duty: Modern Warfare II": "Call of Duty: Modern Warfare II (2022)",
    "Modern Warfare 2": "Call of Duty: Modern Warfare II (2022)",
    "Modern Warfare II": "Call of Duty: Modern Warfare II (2022)",
    "MW2": "Call of Duty: Modern Warfare II (2022)",
    "Call of Duty: Modern Warfare": "Call of Duty: Modern Warfare (2019)",
    "Modern Warfare": "Call of Duty: Modern Warfare (2019)",
    "Black Ops": "Call of Duty: Black Ops",
    # God of War
    "God of War": "God of War (2018)",
    # Resident Evil remakes
    "Resident Evil 2": "Resident Evil 2 (2019)",
    "Resident Evil 3": "Resident Evil 3 (2020)",
    "Resident Evil 4": "Resident Evil 4 (2023)",
    # Final Fantasy
    "FINAL FANTASY VII REMAKE": "Final Fantasy VII Remake Intergrade",
    "Final Fantasy 7 Remake": "Final Fantasy VII Remake Intergrade",
    "FF7 Remake": "Final Fantasy VII Remake Intergrade",
    # Elder Scrolls
    "The Elder Scrolls V: Skyrim Special Edition": "The Elder Scrolls V: Skyrim",
    "Skyrim Special Edition": "The Elder Scrolls V: Skyrim",
    "Skyrim": "The Elder Scrolls V: Skyrim",
    # Remasters that HLTB files under the original
    "DARK SOULS: REMASTERED": "Dark Souls",
    "Dark Souls: Prepare to Die Edition": "Dark Souls",
    "BioShock Remastered": "BioShock",
    "BioShock 2 Remastered": "BioShock 2",
    "BioShock Infinite: The Complete Edition": "BioShock Infinite",
    "Dark Souls 3": "Dark Souls III",
    # GTA
    "Grand Theft Auto 5": "Grand Theft Auto V",
    "GTA V": "Grand Theft Auto V",
    "GTA 5": "Grand Theft Auto V",
    "GTA IV": "Grand Theft Auto IV",
    "GTA 4": "Grand Theft Auto IV",
    "GTA San Andreas": "Grand Theft Auto: San Andreas",
    # Rainbow Six
    "Tom Clancy's Rainbow Six Siege": "Rainbow Six Siege",
    "R6 Siege": "Rainbow Six Siege",
    # The Witcher
    "The Witcher 3: Wild Hunt - Game of the Year Edition": "The Witcher 3: Wild Hunt",
    "The Witcher 3 GOTY": "The Witcher 3: Wild Hunt",
    "Witcher 3": "The Witcher 3: Wild Hunt",
    # Civilization
    "Civilization 6": "Sid Meier's Civilization VI",
    "Civ 6": "Sid Meier's Civilization VI",
    # Misc
    "Fall Guys": "Fall Guys: Ultimate Knockout",
    "Halo MCC": "Halo: The Master Chief Collection",
    "Baldur's Gate III": "Baldur's Gate 3",
    "RDR2": "Red Dead Redemption 2",
    "Hades 2": "Hades II",
    "AC Valhalla": "Assassin's Creed Valhalla",
    "AC Odyssey": "Assassin's Creed Odyssey",
}

# Multiplayer-only games without meaningful completion times.
SKIP_TITLES: frozenset[str] = frozenset(
    {
        "Team Fortress 2",
        "TF2",
        "Dota 2",
        "Counter-Strike 2",
        "CS2",
        "Apex Legends",
        "VALORANT",
        "League of Legends",
        "LoL",
        "Warframe",
        "Path of Exile",
        "PoE",
        "Lost Ark",
        "Destiny 2",
        "Rocket League",
        "Overwatch",
        "Overwatch 2",
        "Rainbow Six Extraction",
        "THE FINALS",
        "Battlefield 2042",
        "Call of Duty: Warzone",
        "Warzone",
        "Fortnite",
        "PUBG",
        "PUBG: BATTLEGROUNDS",
        "PLAYERUNKNOWN'S BATTLEGROUNDS",
    }
)

# Base title -> release year -> HLTB title, for reboots sharing a name.
YEAR_OVERRIDES: dict[str, dict[int, str]] = {
    "DOOM": {1993: "DOOM", 2016: "DOOM (2016)"},
    "Modern Warfare": {
        2007: "Call of Duty 4: Modern Warfare",
        2019: "Call of Duty: Modern Warfare (2019)",
    },
    "Call of Duty: Modern Warfare": {
        2007: "Call of Duty 4: Modern Warfare",
        2019: "Call of Duty: Modern Warfare (2019)",
    },
    "Modern Warfare 2": {
        2009: "Call of Duty: Modern Warfare 2",
        2022: "Call of Duty: Modern Warfare II (2022)",
    },
    "God of War": {2005: "God of War", 2018: "God of War (2018)"},
    "Prey": {2006: "Prey", 2017: "Prey (2017)"},
    "Resident Evil 2": {1998: "Resident Evil 2", 2019: "Resident Evil 2 (2019)"},
    "Resident Evil 3": {1999: "Resident Evil 3: Nemesis", 2020: "Resident Evil 3 (2020)"},
    "Resident Evil 4": {2005: "Resident Evil 4", 2023: "Resident Evil 4 (2023)"},
}
