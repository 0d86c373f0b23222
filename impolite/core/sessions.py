"""Desktop session discovery.

Finds launchable sessions the way display managers do: ``.desktop``
files under ``wayland-sessions/`` and ``xsessions/`` in every XDG data
directory. Earlier directories win when the same file name appears
twice. Names are not localized.
"""

import configparser
import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIRS = "/usr/local/share:/usr/share"

# Subdirectory -> XDG_SESSION_TYPE
SESSION_KINDS = (
    ("wayland-sessions", "wayland"),
    ("xsessions", "x11"),
)

_FIELD_CODES = {"%f", "%F", "%u", "%U", "%d", "%D", "%n", "%N", "%i", "%c", "%k", "%v", "%m"}


@dataclass
class SessionEntry:
    """A session the user can pick after authenticating."""
    name: str
    command: List[str]
    session_type: str
    desktop_file: Path
    desktop_names: List[str] = field(default_factory=list)
    comment: str = ""

    @property
    def env(self) -> List[str]:
        """Environment passed to greetd with ``start_session``."""
        env = [f"XDG_SESSION_TYPE={self.session_type}"]
        if self.desktop_names:
            env.append(f"XDG_CURRENT_DESKTOP={':'.join(self.desktop_names)}")
            env.append(f"XDG_SESSION_DESKTOP={self.desktop_names[0]}")
        return env


def get_data_dirs(environ: Optional[Dict[str, str]] = None) -> List[Path]:
    """Return XDG data directories in priority order."""
    environ = os.environ if environ is None else environ
    raw = environ.get("XDG_DATA_DIRS") or DEFAULT_DATA_DIRS
    return [Path(p) for p in raw.split(":") if p]


def parse_exec(value: str) -> List[str]:
    """
    Split an ``Exec`` value into argv, dropping desktop field codes.

    Raises:
        ValueError: If the value has unbalanced quotes
    """
    args = [arg for arg in shlex.split(value) if arg not in _FIELD_CODES]
    return [arg.replace("%%", "%") for arg in args]


def _get_bool(group: configparser.SectionProxy, key: str) -> bool:
    return group.get(key, "false").strip().lower() == "true"


def load_desktop_entry(path: Path, session_type: str) -> Optional[SessionEntry]:
    """
    Parse one ``.desktop`` file.

    Returns:
        SessionEntry, or None if the file is hidden, broken or not an
        application entry
    """
    parser = configparser.ConfigParser(interpolation=None, strict=False)
    parser.optionxform = str  # keys are case-sensitive
    try:
        parser.read(path, encoding="utf-8")
    except (configparser.Error, UnicodeDecodeError) as e:
        logger.warning(f"Skipping unreadable desktop entry {path}: {e}")
        return None

    if "Desktop Entry" not in parser:
        return None
    group = parser["Desktop Entry"]

    if group.get("Type", "Application") != "Application":
        return None
    if _get_bool(group, "Hidden") or _get_bool(group, "NoDisplay"):
        return None

    name = group.get("Name", "").strip()
    exec_value = group.get("Exec", "").strip()
    if not name or not exec_value:
        logger.debug(f"Desktop entry {path} lacks Name or Exec")
        return None

    try:
        command = parse_exec(exec_value)
    except ValueError as e:
        logger.warning(f"Skipping desktop entry {path} with bad Exec: {e}")
        return None
    if not command:
        return None

    desktop_names = [n for n in group.get("DesktopNames", "").split(";") if n]
    return SessionEntry(
        name=name,
        command=command,
        session_type=session_type,
        desktop_file=path,
        desktop_names=desktop_names,
        comment=group.get("Comment", "").strip(),
    )


def list_sessions(data_dirs: Optional[Iterable[Path]] = None) -> List[SessionEntry]:
    """
    Discover launchable sessions.

    Args:
        data_dirs: Directories to search; defaults to ``$XDG_DATA_DIRS``

    Returns:
        Sessions sorted by name, Wayland before X11 on equal names
    """
    dirs = list(data_dirs) if data_dirs is not None else get_data_dirs()
    seen = set()
    entries: List[SessionEntry] = []

    for subdir, session_type in SESSION_KINDS:
        for data_dir in dirs:
            session_dir = Path(data_dir) / subdir
            if not session_dir.is_dir():
                continue
            for path in sorted(session_dir.glob("*.desktop")):
                file_id = (subdir, path.name)
                if file_id in seen:
                    continue
                seen.add(file_id)
                entry = load_desktop_entry(path, session_type)
                if entry is not None:
                    entries.append(entry)

    order = {kind: i for i, (_, kind) in enumerate(SESSION_KINDS)}
    entries.sort(key=lambda e: (e.name.lower(), order[e.session_type]))
    return entries
