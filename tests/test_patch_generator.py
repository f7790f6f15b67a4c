"""Tests for turning review suggestions into patches."""

from reviewgraph.patch_generator import (
    REASON_NO_CONTENT,
    REASON_NOT_APPLICABLE,
    PatchGenerator,
    PatchRule,
    issue_mentions,
    map_category_to_patch_type,
)
from reviewgraph.review_models import Suggestion


def suggestion(category, issue, file="src/app.ts", line=None, text="Fix it", patch=None):
    return Suggestion(file=file, category=category, issue=issue, suggestion=text, line=line, patch=patch)


class TestCategoryMapping:
    def test_known_categories(self):
        assert map_category_to_patch_type("Security") == "security"
        assert map_category_to_patch_type("Performance") == "optimization"
        assert map_category_to_patch_type("Bug") == "fix"
        assert map_category_to_patch_type("Style") == "refactor"

    def test_unknown_category_is_fix(self):
        assert map_category_to_patch_type("Docs") == "fix"


class TestSecurityRules:
    def test_eval_becomes_json_parse(self):
        content = "const data = eval(raw);\nconsole.log(data);"
        patched = PatchGenerator().apply_suggestion(suggestion("Security", "Use of eval is dangerous"), content)
        assert patched == "const data = JSON.parse(raw);\nconsole.log(data);"

    def test_python_eval_uses_literal_eval(self):
        content = "from __future__ import annotations\nvalue = eval(text)"
        s = suggestion("Security", "eval on user input", file="app/load.py")
        patched = PatchGenerator().apply_suggestion(s, content)
        assert patched.split("\n") == [
            "from __future__ import annotations",
            "import ast",
            "value = ast.literal_eval(text)",
        ]

    def test_inner_html(self):
        content = "el.innerHTML = userInput;"
        patched = PatchGenerator().apply_suggestion(suggestion("Security", "XSS via innerHTML"), content)
        assert patched == "el.textContent = userInput;"

    def test_insecure_url(self):
        content = 'fetch("http://api.example.com")'
        patched = PatchGenerator().apply_suggestion(suggestion("Security", "Request over http: is insecure"), content)
        assert patched == 'fetch("https://api.example.com")'

    def test_plain_password(self):
        content = "const user = {};\nuser.password = body.password;"
        s = suggestion("Security", "Password stored in plain text", line=2)
        patched = PatchGenerator().apply_suggestion(s, content)
        assert "bcrypt.hash(body.password, 10)" in patched


class TestOtherRules:
    def test_index_loop(self):
        content = "for (let i = 0; i < items.length; i++) {\n  use(items[i]);\n}"
        s = suggestion("Performance", "Inefficient for loop")
        patched = PatchGenerator().apply_suggestion(s, content)
        assert patched.startswith("for (const item of items) {")

    def test_python_range_len(self):
        content = "for i in range(len(rows)):\n    print(rows[i])"
        s = suggestion("Performance", "inefficient iteration", file="job.py")
        patched = PatchGenerator().apply_suggestion(s, content)
        assert patched == "for i, item in enumerate(rows):\n    print(rows[i])"
        compile(patched, "job.py", "exec")

    def test_null_access_gets_optional_chaining(self):
        content = "function f(user) {\n  return user.name;\n}"
        s = suggestion("Bug", "Possible null dereference", line=2)
        patched = PatchGenerator().apply_suggestion(s, content)
        assert "return user?.name;" in patched

    def test_python_none_guard(self):
        content = "def f(user):\n    return user.name"
        s = suggestion("Bug", "user may be None", file="svc.py", line=2)
        patched = PatchGenerator().apply_suggestion(s, content)
        assert patched.split("\n") == [
            "def f(user):",
            "    if user is None:",
            "        return None",
            "    return user.name",
        ]

    def test_var_to_const(self):
        content = "var total = 0;"
        patched = PatchGenerator().apply_suggestion(suggestion("Style", "Avoid var declarations"), content)
        assert patched == "const total = 0;"

    def test_missing_semicolons(self):
        content = "const a = 1\nfunction f() {\n  return a\n}"
        patched = PatchGenerator().apply_suggestion(suggestion("Style", "Missing semicolon"), content)
        assert patched == "const a = 1;\nfunction f() {\n  return a;\n}"

    def test_wrap_await_in_try(self):
        content = "async function load() {\n  const r = await fetch(url);\n}"
        s = suggestion("Architecture", "Missing error handling", line=2)
        patched = PatchGenerator().apply_suggestion(s, content)
        assert "  try {" in patched
        assert "    const r = await fetch(url);" in patched
        assert "  } catch (error) {" in patched


class TestCommentFallback:
    def test_comment_inserted_at_line(self):
        content = "function a() {\n    doThing();\n}"
        s = suggestion("Maintainability", "Unclear naming", line=2, text="Rename doThing to   something clearer")
        patched = PatchGenerator().apply_suggestion(s, content)
        assert patched.split("\n")[1] == "    // Rename doThing to something clearer"

    def test_python_comment_marker(self):
        s = suggestion("Style", "naming", file="mod.py", line=1, text="Use snake_case")
        patched = PatchGenerator().apply_suggestion(s, "myValue = 1")
        assert patched == "# Use snake_case\nmyValue = 1"

    def test_no_line_means_no_patch(self):
        s = suggestion("Maintainability", "Unclear naming")
        assert PatchGenerator().apply_suggestion(s, "const x = 1;") is None

    def test_line_out_of_range(self):
        s = suggestion("Maintainability", "Unclear naming", line=40)
        assert PatchGenerator().apply_suggestion(s, "const x = 1;") is None


class TestGeneratePatches:
    def test_patch_fields(self):
        s = suggestion("Security", "eval usage", text="Use JSON.parse instead")
        result = PatchGenerator().generate_patches([s], {"src/app.ts": "eval(x)"})
        patch = result.patches[0]
        assert patch.file == "src/app.ts"
        assert patch.original_content == "eval(x)"
        assert patch.patched_content == "JSON.parse(x)"
        assert patch.description == "Use JSON.parse instead"
        assert patch.type == "security"

    def test_missing_content_is_skipped(self):
        s = suggestion("Security", "eval usage", file="gone.ts")
        result = PatchGenerator().generate_patches([s], {"gone.ts": ""})
        assert result.patches == []
        assert result.skipped[0].reason == REASON_NO_CONTENT

    def test_inapplicable_suggestion_is_skipped(self):
        s = suggestion("Maintainability", "Unclear naming")
        result = PatchGenerator().generate_patches([s], {"src/app.ts": "const x = 1;"})
        assert result.skipped[0].reason == REASON_NOT_APPLICABLE

    def test_ready_patch_is_used(self):
        s = suggestion("Bug", "whatever", patch="const fixed = true;")
        result = PatchGenerator().generate_patches([s], {"src/app.ts": "const fixed = false;"})
        assert result.patches[0].patched_content == "const fixed = true;"
        assert result.patches[0].type == "fix"

    def test_rule_failure_becomes_skip(self):
        def explode(suggestion, lines, ctx):
            raise ValueError("cannot parse line")

        generator = PatchGenerator(rules=[PatchRule("Bug", "boom", issue_mentions("crash"), explode)])
        result = generator.generate_patches([suggestion("Bug", "crash here")], {"src/app.ts": "x"})
        assert result.skipped[0].reason == "cannot parse line"

    def test_summary_counts_every_category(self):
        suggestions = [
            suggestion("Security", "eval usage"),
            suggestion("Security", "eval usage", file="missing.ts"),
            suggestion("Style", "nothing to do"),
        ]
        result = PatchGenerator().generate_patches(suggestions, {"src/app.ts": "eval(x)"})
        assert result.summary == {
            "totalSuggestions": 3,
            "patchesGenerated": 1,
            "skippedCount": 2,
            "categories": {"Security": 2, "Style": 1},
        }
