"""Reader/writer for the declared plugin list.

Plugins are declared in a shell rc file as an array:

```zsh
plugins=(
  zsh-users/zsh-autosuggestions
  romkatv/powerlevel10k@v1.16.1   # prompt
  'ohmyzsh/ohmyzsh:plugins/git'
)
```

The file is only ever parsed as text, never evaluated. Appending keeps
everything outside the inserted line byte-for-byte intact, writes a
timestamped backup first and replaces the file atomically with its
permission bits preserved.
"""
import logging
import re
import shlex
import shutil
import stat
import time
from pathlib import Path
from typing import Optional

from ..spec.parser import parse_spec
from ..spec.validator import ValidationError
from ..utils.fileio import atomic_write_text

logger = logging.getLogger(__name__)

# Start of the array; commented-out lines never match
ARRAY_START = re.compile(r"^[ \t]*plugins=\(", re.MULTILINE)

ADOPT_BLOCK_COMMENT = "# Plugins (added by plugsync adopt)"


class ConfigFileError(Exception):
    """The config file is missing or its plugins array cannot be read."""
    pass


class ConfigWriteError(OSError):
    """The config file could not be backed up or rewritten."""
    pass


class DeclaredConfig:
    """The ``plugins=( ... )`` array in a shell rc file."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def read_declared(self) -> list[str]:
        """
        Read the raw specification strings from the plugins array.

        Returns:
            Strings in declaration order (empty if there is no array)

        Raises:
            ConfigFileError: If the file is missing, unreadable, or the
                array is unterminated / has unbalanced quotes
        """
        text = self._read_text()
        bounds = self._locate_array(text)
        if bounds is None:
            logger.debug(f"No plugins array in {self.path}")
            return []

        start, close = bounds
        try:
            return shlex.split(text[start:close], comments=True)
        except ValueError as e:
            raise ConfigFileError(f"Cannot parse plugins array in {self.path}: {e}") from e

    def declared_names(self) -> set[str]:
        """``owner/name`` keys of the valid entries in the array."""
        names = set()
        for raw in self.read_declared():
            try:
                names.add(parse_spec(raw).plugin_name)
            except ValidationError:
                continue
        return names

    def append_declared(self, raw: str) -> Optional[Path]:
        """
        Add a specification to the plugins array.

        Args:
            raw: Validated specification string

        Returns:
            Path of the backup that was written, or None when the plugin
            was already declared and the file was left alone

        Raises:
            ValidationError: If ``raw`` is not a valid specification
            ConfigFileError: If the current file cannot be read
            ConfigWriteError: If the backup or the rewrite fails
        """
        spec = parse_spec(raw)

        if spec.plugin_name in self.declared_names():
            logger.info(f"{spec.plugin_name} already declared in {self.path}, not modifying")
            return None

        target = self.path.resolve()
        text = self._read_text()
        new_text = self._insert(text, raw)

        backup = self._backup(target)

        try:
            mode = stat.S_IMODE(target.stat().st_mode)
            atomic_write_text(target, new_text, mode=mode)
        except OSError as e:
            raise ConfigWriteError(f"Failed to update {self.path}: {e}") from e

        logger.info(f"Added {raw} to {self.path} (backup: {backup})")
        return backup

    def _read_text(self) -> str:
        if not self.path.exists():
            raise ConfigFileError(f"Config file not found: {self.path}")
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigFileError(f"Cannot read config file {self.path}: {e}") from e

    def _backup(self, target: Path) -> Path:
        """Copy the config file to ``<name>.backup-<epoch>[.<n>]``."""
        base = target.with_name(f"{target.name}.backup-{int(time.time())}")
        backup = base
        counter = 1
        while backup.exists():
            backup = base.with_name(f"{base.name}.{counter}")
            counter += 1

        try:
            shutil.copy2(target, backup)
        except OSError as e:
            raise ConfigWriteError(f"Failed to create backup of {self.path}: {e}") from e
        return backup

    @classmethod
    def _insert(cls, text: str, raw: str) -> str:
        """Return ``text`` with ``raw`` added as the last array element."""
        bounds = cls._locate_array(text)

        if bounds is None:
            prefix = text if not text or text.endswith("\n") else text + "\n"
            return f"{prefix}\n{ADOPT_BLOCK_COMMENT}\nplugins=(\n  {raw}\n)\n"

        _, close = bounds
        line_start = text.rfind("\n", 0, close) + 1

        if not text[line_start:close].strip():
            # Closing paren on its own line
            return f"{text[:line_start]}  {raw}\n{text[line_start:]}"

        # Closing paren shares a line with elements, e.g. plugins=(a/b c/d)
        if text[close - 1].isspace():
            return f"{text[:close]}{raw} {text[close:]}"
        return f"{text[:close]} {raw}{text[close:]}"

    @staticmethod
    def _locate_array(text: str) -> Optional[tuple[int, int]]:
        """
        Find the first plugins array.

        Returns:
            (offset just after "plugins=(", offset of the closing ")"),
            or None if there is no array

        Raises:
            ConfigFileError: If the array is never closed
        """
        match = ARRAY_START.search(text)
        if match is None:
            return None

        start = match.end()
        quote: Optional[str] = None
        i = start
        while i < len(text):
            char = text[i]
            if quote:
                if char == quote:
                    quote = None
            elif char == "#" and (i == start or text[i - 1].isspace()):
                newline = text.find("\n", i)
                if newline == -1:
                    break
                i = newline
            elif char in ("'", '"'):
                quote = char
            elif char == ")":
                return start, i
            i += 1

        raise ConfigFileError("plugins array is not closed with ')'")
