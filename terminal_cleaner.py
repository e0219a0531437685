#!/usr/bin/env python3
"""
Strip display-only terminal noise from a raw pty capture.

The /usage screen is drawn with cursor movement instead of plain spaces and
newlines, so those sequences are turned into whitespace before the generic
escape stripping runs. Progress bars are drawn with block glyphs that carry
no text and are dropped.
"""

import re

# Cursor forward: ESC [ n C
CURSOR_RIGHT = re.compile(r'\x1b\[\d*C')

# Absolute cursor position: ESC [ row ; col H
CURSOR_POSITION = re.compile(r'\x1b\[\d+;\d+H')

# Any other CSI sequence
CSI_SEQUENCE = re.compile(r'\x1b\[[^A-Za-z]*[A-Za-z]')

# OSC sequences (window title, hyperlinks) terminated by BEL
OSC_SEQUENCE = re.compile(r'\x1b\][^\x07]*\x07')

BLOCK_GLYPHS = re.compile('[█▉▊▋▌▍▎▏░▒▓▐▛▜▝▘▗▖▞▟]')

# C0 controls except line breaks (\n, \r are handled when splitting lines)
STRAY_CONTROLS = re.compile(r'[\x00-\x09\x0b\x0c\x0e-\x1f\x7f]')

MULTI_SPACE = re.compile(r' {2,}')


def clean_output(raw: str) -> str:
    """
    Turn a raw terminal capture into plain text lines.

    Args:
        raw: Everything the pty emitted, escape sequences included

    Returns:
        Trimmed, non-empty lines joined with newlines
    """
    text = CURSOR_RIGHT.sub(' ', raw)
    text = CURSOR_POSITION.sub('\n', text)
    text = CSI_SEQUENCE.sub('', text)
    text = OSC_SEQUENCE.sub('', text)
    text = BLOCK_GLYPHS.sub('', text)
    text = text.replace('\t', ' ')
    text = STRAY_CONTROLS.sub('', text)
    text = MULTI_SPACE.sub(' ', text)

    lines = (line.strip() for line in text.splitlines())
    return '\n'.join(line for line in lines if line)
