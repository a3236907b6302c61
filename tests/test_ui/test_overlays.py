"""
Tests for agentcanvas/ui/overlays.py - screen-space overlays.
"""

from agentcanvas.ui.overlays import AddAgentForm, ContextMenu, CreateTaskForm, TextField, Toolbar
from agentcanvas.core.geometry import Rect


class TestContextMenu:
    """Tests for the agent context menu."""

    def test_items_stacked(self):
        menu = ContextMenu("alice", 10, 20)
        assert menu.item_at(15, 25) == "view"
        assert menu.item_at(15, 20 + 28 + 1) == "assign"
        assert menu.item_at(15, 20 + 56 + 1) == "remove"
        assert menu.item_at(15, 20 + 84 + 1) is None


class TestCreateTaskForm:
    """Tests for the create-task form."""

    def test_centered(self):
        form = CreateTaskForm(1200, 800)
        assert (form.rect.x, form.rect.y) == (350, 190)

    def test_payload_requires_description(self):
        form = CreateTaskForm(1200, 800, ["alice"])
        assert form.payload() is None
        form.fields["description"].value = "   "
        assert form.payload() is None

    def test_payload_unassigned_by_default(self):
        form = CreateTaskForm(1200, 800, ["alice"])
        form.fields["description"].value = " Write "
        assert form.payload() == {"description": "Write", "to": "unassigned"}

    def test_options_hidden_until_checked(self):
        form = CreateTaskForm(1200, 800, ["alice"])
        assert form.option_rects() == []
        form.toggle_checkbox("assign_to_agent")
        assert [name for name, _ in form.option_rects()] == ["alice"]

    def test_unchecking_clears_selection(self):
        form = CreateTaskForm(1200, 800, ["alice"], target_agent="alice")
        form.toggle_checkbox("assign_to_agent")
        assert form.selected_option is None

    def test_hit_regions(self):
        form = CreateTaskForm(1200, 800)
        assert form.hit(826, 214) == ("close", None)
        assert form.hit(780, 570) == ("submit", None)
        assert form.hit(400, 265) == ("field", "description")
        assert form.hit(375, 312) == ("checkbox", "assign_to_agent")
        assert form.hit(600, 500) == ("inside", None)
        assert form.hit(10, 10) == ("outside", None)


class TestAddAgentForm:
    """Tests for the add-agent form."""

    def test_payload(self):
        form = AddAgentForm(1200, 800, ["bob", "carol"])
        assert form.payload() is None
        form.select_option("carol")
        assert form.payload() == {"agent_name": "carol"}

    def test_options_limited(self):
        form = AddAgentForm(1200, 800, [f"agent-{i}" for i in range(10)])
        assert len(form.option_rects()) == AddAgentForm.MAX_OPTIONS


class TestTextField:
    """Tests for text field editing."""

    def test_max_length(self):
        field = TextField("d", "D", Rect(0, 0, 10, 10), max_length=3)
        for char in "abcd":
            field.append(char)
        assert field.value == "abc"
        field.backspace()
        assert field.value == "ab"


class TestToolbar:
    """Tests for toolbar hit testing."""

    def test_buttons_in_a_row(self):
        toolbar = Toolbar()
        assert toolbar.button_at(20, 20) == "create_task"
        assert toolbar.button_at(10 + 104 + 5, 20) == "add_agent"
        assert toolbar.button_at(108, 20) is None  # gap
        assert toolbar.button_at(20, 60) is None
