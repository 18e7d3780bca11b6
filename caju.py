import sys
from pathlib import Path

from caju.caju_runtime import ScriptRunner
from caju.caju_printer import Printer


def read_input(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def print_side_effects(result):
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))


def run_script_file(file_path: str):
    """Run a Caju script file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    runner = ScriptRunner(source_dir=str(p.parent.resolve()))
    printer = Printer(runner.syntax)
    result = runner.handle_script(source)
    print_side_effects(result)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value is not None:
        print(printer.pformat(result.value))


def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            run_script_file(arg)
            return

    print("Caju REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(source_dir=str(Path.cwd()))
    printer = Printer(runner.syntax)
    # Lines of a block that is still open (loop, conditional or function).
    pending = []

    while True:
        try:
            raw = read_input("..  " if pending else ">> ")
            if raw == "":
                raise EOFError
            line = raw.rstrip("\n")

            if not pending and not line.strip():
                continue
            if not pending and line.strip() == "exit":
                break

            pending.append(line)
            source = "\n".join(pending)
            result = runner.handle_script(source)

            if result.status == 'error':
                # Keep collecting while the only problem is an unclosed block.
                if "Unclosed" in (result.error_message or "") and line.strip():
                    continue
                pending = []
                print(result.format_error(), file=sys.stderr)
                continue

            pending = []
            print_side_effects(result)
            if result.value is not None:
                print(printer.pformat(result.value))

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            pending = []
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
