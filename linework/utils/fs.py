"""Command files and configuration on disk.

A command file is plain text, one plotter instruction per line.  Lines
starting with ``;`` are comments (``plot_image`` writes a short provenance
header that way); anything after a ``;`` on a command line is ignored too.

Writes go through a uniquely named temporary file in the target directory
followed by ``os.replace``, so a reader (``send_gcode`` started on the same
path, say) sees either the previous program or the complete new one.

Usage:
    from linework.utils import fs
    fs.write_command_file("cat.gcode", lines, header=["source: cat.png"])
    lines = fs.read_command_lines("cat.gcode")
    data = fs.load_yaml("drawbot.yaml")
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

COMMENT_PREFIX = ";"


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create ``p`` (and parents) if missing; return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> None:
    """Replace ``path`` with ``data`` in one step.

    Parameters
    ----------
    path : Union[str, Path]
        Target file; parent directories are created.
    data : bytes
        Full new content.

    Raises
    ------
    RuntimeError
        If writing or renaming fails.  The temporary file is removed and
        any previous content of ``path`` is left untouched.
    """
    path = Path(path)
    directory = ensure_dir(path.parent)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".part", dir=directory,
    )
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise RuntimeError(f"Failed to write {path}: {e}") from e


def atomic_write_text(
    path: Union[str, Path],
    text: str,
    encoding: str = "utf-8"
) -> None:
    atomic_write_bytes(path, text.encode(encoding))


def write_command_file(
    path: Union[str, Path],
    lines: Iterable[str],
    header: Optional[Iterable[str]] = None
) -> int:
    """Write a command file atomically.

    Parameters
    ----------
    path : Union[str, Path]
        Output file
    lines : Iterable[str]
        Commands, without newlines
    header : Iterable[str], optional
        Free-text lines written first as ``; <text>`` comments

    Returns
    -------
    int
        Number of commands written (comments not counted)
    """
    out: List[str] = []
    for text in header or ():
        out.append(f"{COMMENT_PREFIX} {text}")
    commands = list(lines)
    out.extend(commands)
    atomic_write_text(path, "".join(f"{line}\n" for line in out))
    return len(commands)


def read_command_lines(path: Union[str, Path]) -> List[str]:
    """Read the commands of a command file, in order.

    Comments and blank lines are dropped and surrounding whitespace is
    stripped.

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Command file not found: {path}")

    commands = []
    with open(path, 'r', encoding='utf-8') as f:
        for raw in f:
            line = raw.split(COMMENT_PREFIX, 1)[0].strip()
            if line:
                commands.append(line)
    return commands


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Parse a YAML file with ``yaml.safe_load``.

    Returns ``None`` for an empty document; callers decide whether that is
    an error.

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist
    yaml.YAMLError
        On malformed YAML, with the file name in the message
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"YAML file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
