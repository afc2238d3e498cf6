from collections import Counter

import termtables

from .constants import LOGS_PATH
from .helpers import create_dirs

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
BOLD = "\033[1m"
END = "\033[0m"

# level name -> (badge, stdout color)
LEVELS = {
    "info": ("🔵 [INFO]", BLUE),
    "okay": ("🟢 [OKAY]", GREEN),
    "warn": ("🟠 [WARN]", YELLOW),
    "error": ("🔴 [ERROR]", RED),
}

MATCH_COLORS = {"exact": GREEN, "partial": YELLOW}

RESULT_TABLE_HEADER = ["#", "Address", "Contract", "Bytecode", "Match", "Message"]
MATCH_COLUMN = RESULT_TABLE_HEADER.index("Match")


class Logger:
    """
    Mirrors every message to stdout (colored) and to a plain-text log file.
    With `quiet` set only the log file is written, so stdout stays free for
    machine-readable output.
    """

    def __init__(self, log_file):
        self.log_file = log_file
        self.quiet = False

    def set_quiet(self, quiet: bool) -> None:
        self.quiet = quiet

    def log(self, text):
        create_dirs(self.log_file)
        with open(self.log_file, mode="a") as logs:
            logs.write(text + "\n")

    def stdout(self, text, overwrite=False):
        if self.quiet:
            return
        end_char = "\r" if overwrite else "\n"
        print(text, end=end_char, flush=overwrite)

    def _emit(self, level, text, value=None):
        badge, color = LEVELS[level]
        log_text = f"{badge} {text}"
        stdout_text = self.hl(f" {badge} ", color) + text

        if value is not None:
            log_text += f": {value}"
            stdout_text += ": " + self.hl(value, BOLD)

        self.log(log_text)
        self.stdout(stdout_text)

    def info(self, text, value=None):
        self._emit("info", text, value)

    def okay(self, text, value=None):
        self._emit("okay", text, value)

    def warn(self, text, value=None):
        self._emit("warn", text, value)

    def error(self, text, value=None):
        self._emit("error", text, value)

    def report_table(self, table):
        """Print the per-contract result rows followed by a count per match type."""
        if not table:
            return

        def render(rows):
            return termtables.to_string(
                rows,
                header=RESULT_TABLE_HEADER,
                style=termtables.styles.rounded_double,
            )

        self.log(render(table))
        self.stdout(render([self.color_row(row) for row in table]))

        counts = Counter(row[MATCH_COLUMN] for row in table)
        summary = ", ".join(
            f"{match_type}: {counts[match_type]}"
            for match_type in ("exact", "partial", "none")
        )
        level = "okay" if counts["none"] == 0 else "error"
        self._emit(level, f"{len(table)} bytecode checks", summary)

    def color_row(self, row):
        color = MATCH_COLORS.get(row[MATCH_COLUMN], RED)
        return [self.hl(cell, color) for cell in row]

    def hl(self, text, color=BOLD):
        return f"{color}{text}{END}"

    def divider(self):
        self.log(" - +" * 20)
        self.stdout((self.hl(" -", RED) + self.hl(" +", GREEN)) * 20)


logger = Logger(LOGS_PATH)


def to_hex(index, padStart=2):
    return f"{index:0{padStart}X}"


def bgRed(text):
    return f"\u001b[37;41m{text}\x1b[0m"


def bgGreen(text):
    return f"\u001b[37;42m{text}\x1b[0m"


def bgYellow(text):
    return f"\u001b[37;43m{text}\x1b[0m"
