"""Link modes — how a source file is mirrored and how the mirror is verified."""

from __future__ import annotations

import filecmp
import os
import shutil
from enum import Enum
from pathlib import Path

from monoinject.exceptions import InvalidConfigurationError


class LinkMode(str, Enum):
    HARD_LINK = "hard-link"
    SYM_LINK = "sym-link"
    COPY = "copy"

    @classmethod
    def parse(cls, value: str) -> LinkMode:
        try:
            return cls(value)
        except ValueError:
            modes = ", ".join(m.value for m in cls)
            raise InvalidConfigurationError(
                f"Invalid link mode {value!r}. modes = {modes}"
            ) from None


def link_file(src: Path, dest: Path, mode: LinkMode) -> None:
    """Create *dest* as a mirror of *src*. *dest* must not exist."""
    if mode is LinkMode.HARD_LINK:
        os.link(src, dest)
    elif mode is LinkMode.SYM_LINK:
        os.symlink(src.resolve(), dest)
    else:
        shutil.copyfile(src, dest)


def is_linked(src: Path, dest: Path, mode: LinkMode) -> bool:
    """Identity check for an existing mirror under *mode*.

    hard-link: same device and inode.
    sym-link:  *dest* is a symlink that resolves to *src*.
    copy:      byte-for-byte equality.
    """
    if mode is LinkMode.HARD_LINK:
        src_stat = os.stat(src)
        dest_stat = os.stat(dest, follow_symlinks=False)
        return (src_stat.st_dev, src_stat.st_ino) == (dest_stat.st_dev, dest_stat.st_ino)
    if mode is LinkMode.SYM_LINK:
        return dest.is_symlink() and dest.resolve() == src.resolve()
    return filecmp.cmp(src, dest, shallow=False)
