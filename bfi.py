import argparse
import array
import pathlib
import sys
from typing import Optional


TAPE_LENGTH = 32_768
CELL_MIN = -128
CELL_MAX = 127


class InterpreterError(Exception):
    def __init__(self, message: str):
        super().__init__(message)


class IoError(InterpreterError):
    def __init__(self, error: OSError):
        super().__init__(str(error))
        self.error = error


class MissingClosingBrackets(InterpreterError):
    def __init__(self):
        super().__init__("Missing closing bracket(s)")


class MissingOpeningBrackets(InterpreterError):
    def __init__(self):
        super().__init__("Missing opening bracket(s)")


class OutOfMemory(InterpreterError):
    def __init__(self):
        super().__init__("Pointer moved to out of range of memory")


class ArithmeticOverflow(InterpreterError):
    def __init__(self):
        super().__init__("Byte overflow")


class PrefixedInput:
    """
    Input port that serves the bytes of `prefix` before reading from `stream`.
    """

    def __init__(self, prefix: bytes, stream):
        self.buffer = bytearray(prefix)
        self.stream = stream

    def read(self, size: int = 1) -> bytes:
        if self.buffer:
            data = bytes(self.buffer[:size])
            del self.buffer[:size]
            return data

        return self.stream.read(size)


class Interpreter:
    """
    Runs a program against a tape of TAPE_LENGTH signed byte cells.

    Pointer moves and cell arithmetic never wrap: an operation that would
    leave the tape or the range of a cell raises and leaves the state as it
    was. The program cursor is None while it sits before the first
    character, which only happens right after a backward jump to a loop
    starting at position 0.
    """

    source: str
    tape: array.array
    pointer: int
    cursor: Optional[int]

    def __init__(self, source: str, stdin=None, stdout=None):
        self.source = source
        self.tape = array.array("b", bytes(TAPE_LENGTH))
        self.pointer = 0
        self.cursor = 0

        self.stdin = sys.stdin.buffer if stdin is None else stdin
        self.stdout = sys.stdout.buffer if stdout is None else stdout

    @classmethod
    def from_file(cls, path, stdin=None, stdout=None):
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as fp:
                source = fp.read()
        except OSError as err:
            raise IoError(err) from err

        return cls(source, stdin, stdout)

    def check_syntax(self):
        """
        Compare the number of opening and closing brackets.

        Only the counts are checked, so "][" is accepted here.
        """
        opening = self.source.count("[")
        closing = self.source.count("]")

        if opening > closing:
            raise MissingClosingBrackets()
        elif opening < closing:
            raise MissingOpeningBrackets()

    def move_right(self):
        if self.pointer + 1 >= len(self.tape):
            raise OutOfMemory()
        self.pointer += 1

    def move_left(self):
        if self.pointer <= 0:
            raise OutOfMemory()
        self.pointer -= 1

    def increment_cell(self):
        if self.tape[self.pointer] == CELL_MAX:
            raise ArithmeticOverflow()
        self.tape[self.pointer] += 1

    def decrement_cell(self):
        if self.tape[self.pointer] == CELL_MIN:
            raise ArithmeticOverflow()
        self.tape[self.pointer] -= 1

    def output(self):
        try:
            self.stdout.write(bytes((self.tape[self.pointer] & 0xFF,)))
            self.stdout.flush()
        except OSError as err:
            raise IoError(err) from err

    def input(self):
        """
        Read one byte into the current cell.

        At end of input the cell keeps its value.
        """
        try:
            data = self.stdin.read(1)
        except OSError as err:
            raise IoError(err) from err

        if not data:
            return

        value = data[0]
        self.tape[self.pointer] = value - 256 if value > CELL_MAX else value

    def jump_forward(self):
        """
        Skip the loop at the cursor when the current cell is zero.

        The cursor is left on the matching closing bracket.
        """
        if self.tape[self.pointer] != 0:
            return

        position = self.cursor + 1
        depth = 0
        while position < len(self.source):
            char = self.source[position]
            if char == "[":
                depth += 1
            elif char == "]":
                if depth == 0:
                    self.cursor = position
                    return
                depth -= 1

            position += 1

        raise MissingClosingBrackets()

    def jump_backward(self):
        """
        Return to the opening bracket matching the one at the cursor.

        The cursor is left one before the match, so that advancing lands on
        the opening bracket and its condition is evaluated again.
        """
        position = self.cursor - 1
        depth = 0
        while position >= 0:
            char = self.source[position]
            if char == "[":
                if depth == 0:
                    self.cursor = position - 1 if position > 0 else None
                    return
                depth -= 1
            elif char == "]":
                depth += 1

            position -= 1

        raise MissingOpeningBrackets()

    def step(self):
        match self.source[self.cursor]:
            case ">":
                self.move_right()
            case "<":
                self.move_left()
            case "+":
                self.increment_cell()
            case "-":
                self.decrement_cell()
            case ".":
                self.output()
            case ",":
                self.input()
            case "[":
                self.jump_forward()
            case "]":
                self.jump_backward()
            case _:
                pass

    def advance(self):
        self.cursor = 0 if self.cursor is None else self.cursor + 1

    def run(self):
        self.check_syntax()

        self.cursor = 0
        while self.cursor < len(self.source):
            self.step()
            self.advance()


def interpret(source: str, stdin=None, stdout=None) -> Interpreter:
    """
    Interpret the program.
    """
    interpreter = Interpreter(source, stdin, stdout)
    interpreter.run()
    return interpreter


# entry point
def read_until_char(stream, char: bytes = b"!"):
    """
    Read a program from `stream` up to `char`.

    Returns the program text and the bytes read past `char`, which belong to
    the program's input.
    """
    result = b""

    chunk_size = 1024
    while char not in result:
        chunk = stream.read1(chunk_size)
        if not chunk:
            return result.decode("utf-8", errors="replace"), b""
        result += chunk

    first_occurrence = result.index(char)
    source = result[:first_occurrence].decode("utf-8", errors="replace")

    return source, result[first_occurrence + 1:]


def read_options(argv=None):
    parser = argparse.ArgumentParser(description="Interpret programs on a tape of signed byte cells.")
    parser.add_argument("source", type=pathlib.Path, nargs="*",
                        help="Files to interpret, in order. Without any, the program is read "
                             "from stdin up to the first '!'.")

    return parser.parse_args(argv)


def main(argv=None):
    options = read_options(argv)

    try:
        if options.source:
            for path in options.source:
                Interpreter.from_file(path).run()
        else:
            source, unused = read_until_char(sys.stdin.buffer)
            interpret(source, stdin=PrefixedInput(unused, sys.stdin.buffer))
    except InterpreterError as err:
        sys.stderr.write("fatal: %s\n" % str(err))
        sys.exit(1)


if __name__ == '__main__':
    main()
