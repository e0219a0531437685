"""Claude Quota Watch version information."""

__version__ = "1.0.0"
__title__ = "Claude Quota Watch"
__description__ = "Poll Claude Code /usage through a pseudo-terminal and keep the last good reading"
__author__ = "Claude Quota Watch Contributors"
__license__ = "MIT"

# v1.0.0 - Terminal scraping pipeline
# - Drive 'claude' in a pty with a timed keystroke script (pexpect)
# - Clean cursor/OSC sequences and progress-bar glyphs from the capture
# - Positional extraction of session, weekly, model-weekly and extra usage
# - Helper runs as a separate process with a hard timeout
# - Single-slot JSON cache served as fallback when a fetch fails
# - Poller with an overlap guard and rich console output
