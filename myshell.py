#!/usr/bin/env python3
"""
MyShell - a small interactive command shell

MyShell reads one line at a time, parses it into one of a fixed set of
commands and runs the matching handler. The supported builtins are the
classic handful: ``dir``, ``help``, ``vol``, ``path``, ``tasklist``,
``notepad``, ``echo``, ``color``, ``ping`` and ``exit`` (also ``quit`` and
``q``).

There are no pipes, redirection, globbing or quoting. A line is a verb
followed by whitespace-separated tokens. The one exception is ``color``,
which receives the whole remainder of the line so that several settings can
be given at once (``color text=red background=blue``).

Platform-specific tools (process lister, editor, ping flags, volume
utility) are looked up in a small strategy table selected once at import
time. The ``PATH`` variable is reached through an injectable environment
store so tests never touch the real process environment.

An optional YAML file (``myshell.yaml`` or ``$MYSHELL_CONFIG``) can change
the prompt, the banner colour and the readline history file.
"""

import os
import sys
import subprocess
import threading
from cmd import Cmd
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple, Union

# optional module
try:
    import readline  # noqa: F401
except ImportError:
    readline = None

import yaml
from colorama import Back, Cursor, Fore, Style, init as colorama_init
from colorama.ansi import clear_screen

DEFAULT_PROMPT = "==> "
DEFAULT_CONFIG_PATH = "myshell.yaml"
CONFIG_ENV_VAR = "MYSHELL_CONFIG"
BANNER = "\nWelcome to MyShell!\n"
FAREWELL = "\nThank you for using MyShell!\n"

# Number of echo requests sent by ``ping``.
PING_COUNT = 4
# ``echo`` (and the parser in general) sees at most this many arguments.
MAX_ARGS = 4


# ---------- Errors ----------
class CommandError(Exception):
    """Base class for every failure a command handler can report."""

    label = "Command error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"


class CommandIOError(CommandError):
    """Wraps an OS or filesystem error raised while running a command."""

    label = "I/O error"

    def __init__(self, error: OSError):
        super().__init__(str(error))
        self.error = error


class CommandNotFound(CommandError):
    label = "Not found"


class InvalidArgument(CommandError):
    label = "Invalid argument"


class MissingArguments(CommandError):
    label = "Missing arguments"


class TooManyArguments(CommandError):
    # not raised by any builtin at the moment
    label = "Too many arguments"


class CommandFailed(CommandError):
    """An external program could not be started or exited unsuccessfully."""

    label = "Command failed"


# ---------- Commands ----------
# One frozen dataclass per verb. Values compare by content, so
# ``parse_command("q") == Exit()`` holds.

@dataclass(frozen=True)
class Dir:
    pass


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Vol:
    pass


@dataclass(frozen=True)
class Path:
    subcommand: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class TaskList:
    pass


@dataclass(frozen=True)
class Notepad:
    pass


@dataclass(frozen=True)
class Echo:
    args: Tuple[Optional[str], ...] = (None,) * MAX_ARGS


@dataclass(frozen=True)
class Color:
    settings: Optional[str] = None


@dataclass(frozen=True)
class Ping:
    address: Optional[str] = None


@dataclass(frozen=True)
class Exit:
    pass


@dataclass(frozen=True)
class Unknown:
    pass


Command = Union[Dir, Help, Vol, Path, TaskList, Notepad, Echo, Color, Ping, Exit, Unknown]


# ---------- Platform tools ----------
class PlatformTools(NamedTuple):
    """External programs used by the OS-facing builtins on one platform."""

    name: str
    # None means "read filesystem statistics directly"
    volume: Optional[Tuple[str, ...]]
    tasklist: Tuple[str, ...]
    editor: Tuple[str, ...]
    ping_count_flag: str
    detach: Dict[str, Any]


TOOLS: Dict[str, PlatformTools] = {
    "windows": PlatformTools(
        name="windows",
        volume=("cmd", "/c", "vol"),
        tasklist=("tasklist",),
        editor=("notepad.exe",),
        ping_count_flag="-n",
        detach={"creationflags": getattr(subprocess, "DETACHED_PROCESS", 0)},
    ),
    "macos": PlatformTools(
        name="macos",
        volume=None,
        tasklist=("ps", "-e", "-o", "pid,comm"),
        editor=("open", "-a", "TextEdit"),
        ping_count_flag="-c",
        detach={"start_new_session": True},
    ),
    "posix": PlatformTools(
        name="posix",
        volume=None,
        tasklist=("ps", "-e", "-o", "pid,comm"),
        editor=("gedit",),
        ping_count_flag="-c",
        detach={"start_new_session": True},
    ),
}


def tools_for(platform: str) -> PlatformTools:
    """Pick the tool table for a ``sys.platform`` value."""
    if platform.startswith("win"):
        return TOOLS["windows"]
    if platform == "darwin":
        return TOOLS["macos"]
    return TOOLS["posix"]


CURRENT_TOOLS = tools_for(sys.platform)


# ---------- Environment ----------
class ProcessEnvironment:
    """Environment store backed by the real process environment."""

    def get(self, name: str) -> Optional[str]:
        return os.environ.get(name)

    def set(self, name: str, value: str) -> None:
        os.environ[name] = value


class MemoryEnvironment:
    """Dict-backed environment store, used in place of ``os.environ`` in tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})

    def get(self, name: str) -> Optional[str]:
        return self.values.get(name)

    def set(self, name: str, value: str) -> None:
        self.values[name] = value


# ---------- Configuration ----------
@dataclass
class Settings:
    prompt: str = DEFAULT_PROMPT
    banner_color: str = "magenta"
    history_file: Optional[str] = "~/.myshell_history"


def load_settings(path: Optional[str] = None) -> Settings:
    """Load shell settings from a YAML file.

    The file is ``path`` if given, else ``$MYSHELL_CONFIG``, else
    ``myshell.yaml`` in the working directory. A missing file yields the
    defaults; unknown keys are ignored.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        return Settings()
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of settings")
    settings = Settings()
    if "prompt" in data:
        settings.prompt = str(data["prompt"])
    if "banner_color" in data:
        settings.banner_color = str(data["banner_color"])
    if "history_file" in data:
        hist = data["history_file"]
        settings.history_file = str(hist) if hist else None
    return settings


# ---------- Utilities ----------
# Closed colour palette shared by ``color`` and the banner.
PALETTE: Dict[str, Tuple[str, str]] = {
    "black": (Fore.BLACK, Back.BLACK),
    "red": (Fore.RED, Back.RED),
    "green": (Fore.GREEN, Back.GREEN),
    "blue": (Fore.BLUE, Back.BLUE),
    "white": (Fore.WHITE, Back.WHITE),
    "yellow": (Fore.YELLOW, Back.YELLOW),
    "magenta": (Fore.MAGENTA, Back.MAGENTA),
    "cyan": (Fore.CYAN, Back.CYAN),
    "grey": (Fore.LIGHTBLACK_EX, Back.LIGHTBLACK_EX),
}


def c(text: Any, color: str = "cyan") -> str:
    """Colourise text for terminal display using a palette name."""
    fore = PALETTE.get(color.lower(), PALETTE["cyan"])[0]
    lines = str(text).splitlines() or [""]
    return "\n".join(f"{fore}{ln}{Style.RESET_ALL}" for ln in lines)


def table(headers: List[str], rows: List[Tuple[Any, ...]]) -> str:
    """Render a simple table with even column widths."""
    widths = [len(h) for h in headers]
    for r in rows:
        for i, cell in enumerate(r):
            widths[i] = max(widths[i], len(str(cell)))
    line = "  ".join(f"{h:<{widths[i]}}" for i, h in enumerate(headers))
    body = "\n".join("  ".join(f"{str(cell):<{widths[i]}}" for i, cell in enumerate(r)).rstrip() for r in rows)
    return f"{line.rstrip()}\n" + "-" * len(line) + ("\n" + body if body else "")


def human_size(num_bytes: float) -> str:
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if num_bytes < 1024:
            return f"{num_bytes:.2f} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.2f} PB"


# ---------- Parser ----------
VERBS: Tuple[str, ...] = (
    "dir", "help", "vol", "path", "tasklist", "notepad",
    "echo", "color", "ping", "exit", "quit", "q",
)


def _arg(parts: List[str], index: int) -> Optional[str]:
    return parts[index] if index < len(parts) else None


def parse_command(line: str) -> Command:
    """Turn an input line into a Command value.

    Never raises: an empty line or an unrecognised verb gives ``Unknown``.
    Verbs are matched case-sensitively. ``color`` keeps everything after the
    verb as its payload; every other verb works on whitespace tokens.
    """
    parts = line.split()
    verb = parts[0] if parts else ""

    if verb == "dir":
        return Dir()
    if verb == "help":
        return Help()
    if verb == "vol":
        return Vol()
    if verb == "path":
        return Path(_arg(parts, 1), _arg(parts, 2))
    if verb == "tasklist":
        return TaskList()
    if verb == "notepad":
        return Notepad()
    if verb == "echo":
        return Echo(tuple(_arg(parts, i) for i in range(1, MAX_ARGS + 1)))
    if verb == "color":
        rest = line.strip().split(None, 1)
        return Color(rest[1].strip() if len(rest) > 1 else None)
    if verb == "ping":
        return Ping(_arg(parts, 1))
    if verb in ("exit", "quit", "q"):
        return Exit()
    return Unknown()


# ---------- Executor ----------
HELP_TEXT: "OrderedDict[str, str]" = OrderedDict([
    ("dir", "List the files and folders in the current directory"),
    ("help", "Show this list of commands"),
    ("vol", "Show volume information for the current drive"),
    ("path", "Show PATH, or change it with 'path clear' / 'path set <value>'"),
    ("tasklist", "List running processes"),
    ("notepad", "Open a text editor"),
    ("echo", "Print up to four words"),
    ("color", "Set terminal colours, e.g. 'color text=red background=blue'"),
    ("ping", "Send 4 echo requests to a host"),
    ("exit", "Leave the shell (also 'quit' or 'q')"),
])


class Executor:
    """Runs parsed commands.

    ``execute_checked`` returns the text a command produced (or None) and
    lets ``CommandError`` propagate. ``execute`` prints that text, or a
    single error line, to standard output.
    """

    def __init__(self, env=None, tools: Optional[PlatformTools] = None, stdout=None):
        self.env = env if env is not None else ProcessEnvironment()
        self.tools = tools or CURRENT_TOOLS
        self._stdout = stdout
        self.handlers: Dict[type, Callable[[Any], Optional[str]]] = {
            Dir: self.h_dir,
            Help: self.h_help,
            Vol: self.h_vol,
            Path: self.h_path,
            TaskList: self.h_tasklist,
            Notepad: self.h_notepad,
            Echo: self.h_echo,
            Color: self.h_color,
            Ping: self.h_ping,
        }

    @property
    def stdout(self):
        return self._stdout or sys.stdout

    def write(self, text: str) -> None:
        self.stdout.write(text + "\n")
        self.stdout.flush()

    def execute_checked(self, cmd) -> Optional[str]:
        handler = self.handlers.get(type(cmd))
        if handler is None:
            raise CommandNotFound("Command not found")
        return handler(cmd)

    def execute(self, cmd) -> None:
        try:
            out = self.execute_checked(cmd)
        except CommandError as e:
            self.write(f"Error executing command: {e}")
            return
        if out is not None:
            self.write(out)

    # ---- handlers
    def h_dir(self, cmd: Dir) -> str:
        """List the direct children of the working directory."""
        try:
            cwd = os.getcwd()
            with os.scandir(cwd) as it:
                entries = sorted(it, key=lambda e: e.name)
                rows = [(e.name, "Directory" if e.is_dir() else "File") for e in entries]
        except OSError as e:
            raise CommandIOError(e) from e
        if not rows:
            return f"Directory of {cwd}\n(empty)"
        return f"Directory of {cwd}\n" + table(["Name", "Type"], rows)

    def h_help(self, cmd: Help) -> str:
        return table(["Command", "Description"], list(HELP_TEXT.items()))

    def h_vol(self, cmd: Vol) -> str:
        """Report volume information.

        Windows has a ``vol`` utility whose output is passed through as is.
        Elsewhere the filesystem holding the working directory is queried
        with ``statvfs``: its id and the free space (free blocks times block
        size).
        """
        if self.tools.volume:
            try:
                proc = subprocess.run(list(self.tools.volume), capture_output=True, text=True, errors="replace")
            except OSError as e:
                raise CommandIOError(e) from e
            if proc.returncode != 0:
                detail = proc.stderr.strip() or "volume query failed"
                raise CommandIOError(OSError(proc.returncode, detail))
            return proc.stdout.rstrip("\n")
        try:
            st = os.statvfs(os.getcwd())
        except OSError as e:
            raise CommandIOError(e) from e
        free = st.f_bfree * st.f_bsize
        return (
            f"Filesystem ID: {st.f_fsid}\n"
            f"Free space: {free} bytes ({human_size(free)})"
        )

    def h_path(self, cmd: Path) -> str:
        if cmd.subcommand is None:
            value = self.env.get("PATH")
            return "PATH is not set" if value is None else f"PATH={value}"
        if cmd.subcommand == "clear":
            self.env.set("PATH", "")
            return "PATH cleared"
        if cmd.subcommand == "set":
            if cmd.value is None:
                raise MissingArguments("usage: path set <value>")
            self.env.set("PATH", cmd.value)
            return f"PATH set to {cmd.value}"
        raise InvalidArgument(f"unknown path subcommand '{cmd.subcommand}' (expected 'clear' or 'set')")

    def h_tasklist(self, cmd: TaskList) -> str:
        argv = list(self.tools.tasklist)
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, errors="replace")
        except OSError as e:
            raise CommandFailed(f"{argv[0]}: {e}") from e
        if proc.returncode != 0:
            raise CommandFailed(f"{argv[0]} exited with status {proc.returncode}")
        lines = [ln for ln in proc.stdout.splitlines() if ln.strip()]
        width = len(str(len(lines)))
        return "\n".join(f"{i:>{width}}  {ln}" for i, ln in enumerate(lines, 1))

    def h_notepad(self, cmd: Notepad) -> str:
        argv = list(self.tools.editor)
        try:
            subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **self.tools.detach,
            )
        except OSError as e:
            raise CommandFailed(f"could not start {' '.join(argv)}: {e}") from e
        return f"Started {' '.join(argv)}"

    def h_echo(self, cmd: Echo) -> str:
        return " ".join(a for a in cmd.args if a is not None)

    def h_color(self, cmd: Color) -> None:
        """Apply ``text=<colour>`` / ``background=<colour>`` settings.

        Unknown colour names and unknown keys are reported and skipped. A
        token without ``=`` aborts the whole command before anything is
        written to the terminal.
        """
        if not cmd.settings:
            raise MissingArguments("usage: color text=<colour> background=<colour>")
        codes: List[str] = []
        warnings: List[str] = []
        for pair in cmd.settings.split():
            if "=" not in pair:
                raise InvalidArgument(f"expected key=value, got '{pair}'")
            key, value = pair.split("=", 1)
            if key == "text":
                slot = 0
            elif key == "background":
                slot = 1
            else:
                warnings.append(f"Invalid argument: {key}")
                continue
            colours = PALETTE.get(value.lower())
            if colours is None:
                warnings.append(f"Unknown color: {value}")
                continue
            codes.append(colours[slot])
        # clear first so the warnings stay visible on the fresh screen
        self.stdout.write("".join(codes) + clear_screen() + Cursor.POS(1, 1))
        for w in warnings:
            self.write(w)
        self.stdout.flush()
        return None

    def h_ping(self, cmd: Ping) -> str:
        if not cmd.address:
            raise MissingArguments("usage: ping <address>")
        argv = ["ping", self.tools.ping_count_flag, str(PING_COUNT), cmd.address]
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, errors="replace")
        except OSError as e:
            raise CommandFailed(f"ping: {e}") from e
        if proc.returncode != 0:
            raise CommandFailed(f"ping {cmd.address} exited with status {proc.returncode}")
        return proc.stdout.rstrip("\n")


# ---------- Shell ----------
class Shell(Cmd):
    """Interactive read loop.

    Every accepted command runs on its own worker thread, which is joined
    before the next prompt, so commands never overlap.
    """

    def __init__(self, executor: Optional[Executor] = None, settings: Optional[Settings] = None):
        super().__init__()
        self.settings = settings or Settings()
        self.executor = executor or Executor()
        self.prompt = self.settings.prompt
        self.intro = c(BANNER, self.settings.banner_color)
        # persistent history if readline is available
        if readline and self.settings.history_file:
            import atexit
            hist = os.path.expanduser(self.settings.history_file)
            try:
                readline.read_history_file(hist)
            except FileNotFoundError:
                pass
            except OSError as e:
                print(f"History disabled: {e}")
                hist = None
            if hist:
                atexit.register(readline.write_history_file, hist)

    def _read_line(self) -> Optional[str]:
        """Read one line of input, or None once the input is exhausted."""
        if self.use_rawinput:
            try:
                return input(self.prompt)
            except EOFError:
                return None
        self.stdout.write(self.prompt)
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    def cmdloop(self, intro=None):
        """Repeatedly prompt, read and run commands until one asks to stop.

        End of input leaves the shell the same way ``exit`` does. It is
        handled here rather than as a pseudo-command line, so every line the
        user types goes through the parser.
        """
        self.preloop()
        old_completer = None
        if self.use_rawinput and self.completekey and readline:
            old_completer = readline.get_completer()
            readline.set_completer(self.complete)
            readline.parse_and_bind(self.completekey + ": complete")
        try:
            if intro is not None:
                self.intro = intro
            if self.intro:
                self.stdout.write(str(self.intro) + "\n")
            stop = None
            while not stop:
                line = self._read_line()
                if line is None:
                    print()
                    stop = self.do_exit("")
                    break
                line = self.precmd(line)
                stop = self.onecmd(line)
                stop = self.postcmd(stop, line)
            self.postloop()
        finally:
            if self.use_rawinput and self.completekey and readline:
                readline.set_completer(old_completer)

    def _run_worker(self, cmd) -> None:
        def target():
            try:
                self.executor.execute(cmd)
            except Exception as e:
                self.executor.write(f"Error executing command: {e}")

        worker = threading.Thread(target=target, name=f"myshell-{type(cmd).__name__.lower()}")
        worker.start()
        worker.join()

    def onecmd(self, line: str):
        cmd = parse_command(line)
        if isinstance(cmd, Exit):
            return self.do_exit("")
        if isinstance(cmd, Unknown):
            print(f"Invalid command: {line.strip()}")
            return False
        self._run_worker(cmd)
        return False

    def do_exit(self, arg):
        """Exit the shell."""
        print(c(FAREWELL, self.settings.banner_color))
        return True

    # tab completion on verbs
    def completenames(self, text, *ignored):
        return [v for v in VERBS if v.startswith(text)]

    def completedefault(self, *ignored):
        return []


# ---------- main ----------
def main() -> int:
    """Run the interactive shell and return the process exit code."""
    try:
        settings = load_settings()
    except (yaml.YAMLError, ValueError) as e:
        print(f"Ignoring configuration: {e}")
        settings = Settings()
    colorama_init()
    shell = Shell(settings=settings)
    try:
        shell.cmdloop()
    except (OSError, UnicodeDecodeError):
        print("Failed to read input line")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
