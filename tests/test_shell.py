import io

import pytest

from hcloudcli.core.errors import MissingIdentifier, PollTimeout, UnsupportedOperation
from hcloudcli.shell import EvaluationError, Shell

IMAGES = [
    {"id": 1, "name": "debian-9", "type": "system", "created_from": None},
    {"id": 2, "name": "ubuntu-16.04", "type": "system", "created_from": None},
]


class _FakeClient:
    def __init__(self):
        self.calls = []
        self.action_polls = 0

    def list_resources(self, family, filters=None):
        self.calls.append(("list", family, filters))
        if family == "pricing":
            return {"currency": "EUR", "vat_rate": "19.000000"}
        if family == "images":
            if filters and "name" in filters:
                return [i for i in IMAGES if i["name"] == filters["name"]]
            return IMAGES
        return []

    def get_resource(self, family, resource_id, filters=None):
        if not resource_id:
            raise MissingIdentifier(family, resource_id)
        self.calls.append(("get", family, resource_id))
        return next(i for i in IMAGES if i["id"] == resource_id)

    def wait_for_action(self, action_id, max_wait_sec=None):
        self.calls.append(("wait", action_id, max_wait_sec))
        return {"id": action_id, "status": "success"}


@pytest.fixture()
def shell():
    return Shell(_FakeClient(), out=io.StringIO())


def test_plain_expression_renders_json(shell):
    assert shell.run_line("1+2") == "3\n"
    out = shell.run_line("get_images({'name': 'debian-9'})[0]['id']")
    assert out == "1\n"


def test_format_prefix(shell):
    assert shell.run_line(".raw get_image(1)['name']") == "debian-9\n"
    assert shell.run_line(".c get('image', 1, 'name', 'type')") == "debian-9\tsystem\n"
    assert shell.run_line(".csv get('images', 'id', 'name')") == "1\tdebian-9\n2\tubuntu-16.04\n"
    assert shell.run_line(".shell get('image', 1)").splitlines() == [
        'created_from=""', 'id="1"', 'name="debian-9"', 'type="system"',
    ]
    assert shell.run_line(".yaml get_image(2)").startswith("---")


def test_default_format_applies(monkeypatch):
    sh = Shell(_FakeClient(), default_format="r", out=io.StringIO())
    assert sh.run_line("get_image(1)['type']") == "system\n"


def test_unknown_prefix_format(shell):
    with pytest.raises(UnsupportedOperation):
        shell.run_line(".xml get_images()")


def test_statements_and_none_produce_no_output(shell):
    assert shell.run_line("x = get_image(2)") is None
    assert shell.run_line(".raw x['name']") == "ubuntu-16.04\n"
    assert shell.run_line("None") is None
    assert shell.run_line("   ") is None


def test_expression_errors_are_wrapped(shell):
    with pytest.raises(EvaluationError) as ei:
        shell.run_line("get_images()[99]")
    assert "IndexError" in str(ei.value)
    with pytest.raises(EvaluationError):
        shell.run_line("undefined_name")
    with pytest.raises(EvaluationError):
        shell.run_line("__import__('os')")


def test_library_errors_pass_through(shell):
    with pytest.raises(MissingIdentifier):
        shell.run_line("get_image(0)")
    with pytest.raises(UnsupportedOperation):
        shell.run_line("get('load_balancers')")


def test_get_singular_needs_id(shell):
    with pytest.raises(EvaluationError):
        shell.run_line("get('image')")


def test_get_fields_of_single_object_collection(shell):
    assert shell.run_line(".raw get('pricing')['currency']") == "EUR\n"
    with pytest.raises(EvaluationError) as ei:
        shell.run_line("get('pricing', 'currency')")
    assert "not a list" in str(ei.value)
    assert "AttributeError" not in str(ei.value)


def test_wait_helpers(shell):
    assert shell.run_line(".raw wait_for_action({'id': 7})['status']") == "success\n"
    assert shell.client.calls[-1] == ("wait", 7, None)
    assert shell.run_line("wait_for(3, 0, lambda: 5)") == "5\n"
    with pytest.raises(PollTimeout):
        shell.run_line("wait_for(2, 0, lambda: None)")


def test_help_and_completion(shell):
    shell.run_line("help('do_server_action')")
    text = shell.out.getvalue()
    assert text.startswith("do_server_action(id, action")
    assert "reboot" in text
    words = shell.completion_words()
    assert "get_servers" in words and "quit" in words
    assert "__builtins__" not in words


def test_quit_raises_system_exit(shell):
    with pytest.raises(SystemExit):
        shell.run_line("quit()")


def test_execute_writes_output(shell):
    shell.execute(".raw get_image(1)['name']")
    assert shell.out.getvalue() == "debian-9\n"


def test_interactive_loop(shell, monkeypatch, tmp_path):
    lines = iter([".raw get_image(1)['name']", "get_image(0)", "quit()"])

    def fake_input(prompt):
        try:
            return next(lines)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr("builtins.input", fake_input)
    with pytest.raises(SystemExit):
        shell.interactive(str(tmp_path / "no_history"))
    assert shell.out.getvalue() == "debian-9\n"
    assert not (tmp_path / "no_history").exists()


def test_interactive_eof_prints_exit(shell, monkeypatch):
    def eof(prompt):
        raise EOFError

    monkeypatch.setattr("builtins.input", eof)
    assert shell.interactive(None) == 0
    assert shell.out.getvalue() == "exit\n"
