"""Tests for console prompts."""

import pytest

from conftest import scripted_prompter


class TestChoose:
    def test_valid_selection(self):
        prompter, printed = scripted_prompter("2")

        assert prompter.choose("Select", 3) == 2
        assert printed == []

    @pytest.mark.parametrize("invalid", ["0", "4", "abc"])
    def test_invalid_input_reprompts(self, invalid):
        prompter, printed = scripted_prompter(invalid, "3")

        assert prompter.choose("Select", 3) == 3
        assert len(printed) == 1
        assert "between 1 and 3" in printed[0]

    def test_non_integer_message(self):
        prompter, printed = scripted_prompter("abc", "1")

        prompter.choose("Select", 3)
        assert printed == ["Invalid selection 'abc'. Enter a number between 1 and 3."]

    def test_out_of_range_message(self):
        prompter, printed = scripted_prompter("4", "1")

        prompter.choose("Select", 3)
        assert printed == ["Selection 4 is out of range. Enter a number between 1 and 3."]

    def test_empty_answer_takes_default(self):
        prompter, _ = scripted_prompter("")
        assert prompter.choose("Select", 3, default=1) == 1

    def test_non_interactive_takes_default_without_reading(self):
        prompter, _ = scripted_prompter("3", interactive=False)
        assert prompter.choose("Select", 3, default=2) == 2

    def test_eof_takes_default(self):
        prompter, _ = scripted_prompter()
        assert prompter.choose("Select", 3) == 1

    def test_max_attempts_falls_back_to_default(self):
        prompter, printed = scripted_prompter("x", "y", "z", "2", max_attempts=3)

        assert prompter.choose("Select", 3) == 1
        assert len(printed) == 3

    def test_empty_list_rejected(self):
        prompter, _ = scripted_prompter()
        with pytest.raises(ValueError):
            prompter.choose("Select", 0)


class TestConfirm:
    def test_yes_and_no(self):
        prompter, _ = scripted_prompter("y", "no")

        assert prompter.confirm("Continue?") is True
        assert prompter.confirm("Continue?") is False

    def test_invalid_answer_reprompts(self):
        prompter, printed = scripted_prompter("maybe", "n")

        assert prompter.confirm("Continue?", default=True) is False
        assert printed == ["Please answer 'y' or 'n'."]

    def test_non_interactive_default(self):
        prompter, _ = scripted_prompter(interactive=False)
        assert prompter.confirm("Continue?", default=False) is False


class TestAsk:
    def test_answer_is_stripped(self):
        prompter, _ = scripted_prompter("  C:\\Logs  ")
        assert prompter.ask("Path", default="here") == "C:\\Logs"

    def test_blank_answer_takes_default(self):
        prompter, _ = scripted_prompter("   ")
        assert prompter.ask("Path", default="here") == "here"
