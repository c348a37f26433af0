"""
Heuristics for matching installed software against backed-up inventories.

App names, cask tokens and App Store titles rarely agree exactly ("Visual
Studio Code" vs ``visual-studio-code``), so every comparison the engine makes
goes through one of these functions. They are deliberately fuzzy; keep them
small and covered by tests when tuning.
"""

from typing import Iterable, List, Set


def normalize(name: str) -> str:
    return name.strip().lower()


def cask_matches_app(app_name: str, cask: str) -> bool:
    """True if the ``/Applications`` entry *app_name* looks like *cask*."""
    app = normalize(app_name)
    token = normalize(cask)
    if not app or not token:
        return False
    return (
        token in app
        or app in token
        or app.replace(" ", "-") == token
        or app.replace(" ", "") == token.replace("-", "")
    )


def mas_title_matches_app(app_name: str, title: str) -> bool:
    """True if *app_name* looks like the App Store title *title*."""
    app = normalize(app_name)
    other = normalize(title)
    if not app or not other:
        return False
    return app == other or other in app or app in other


def filter_manual_apps(
    apps: Iterable[str], casks: Iterable[str], mas_titles: Iterable[str]
) -> List[str]:
    """Return the apps that neither a cask nor an App Store entry accounts for."""
    cask_list = list(casks)
    title_list = list(mas_titles)
    return [
        app
        for app in apps
        if not any(cask_matches_app(app, c) for c in cask_list)
        and not any(mas_title_matches_app(app, t) for t in title_list)
    ]


def installed_mas_ids(listing: str) -> Set[str]:
    """Collect the numeric app ids from ``mas list`` output."""
    ids = set()
    for line in listing.splitlines():
        parts = line.split()
        if parts and parts[0].isdigit():
            ids.add(parts[0])
    return ids


def mas_app_installed(app_id: str, listing: str) -> bool:
    return app_id.strip() in installed_mas_ids(listing)


def essential_in_backup(essential: str, backed_up: Iterable[str]) -> bool:
    """True if any backed-up formula or cask name contains *essential*.

    Substring matching lets ``python`` pick up ``python@3.12``.
    """
    needle = normalize(essential)
    return any(needle in normalize(name) for name in backed_up)
