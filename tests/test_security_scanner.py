"""Tests for security scanner module."""

import re

from reviewgraph.security_scanner import TOOL_NAME, PatternSecurityScanner, SecurityPattern


def rules(issues):
    return {issue.rule for issue in issues}


class TestPatternSecurityScanner:
    """Test PatternSecurityScanner functionality."""

    def test_detect_eval(self):
        issues = PatternSecurityScanner().scan_file("src/a.ts", "const data = eval(input);")
        assert len(issues) == 1
        issue = issues[0]
        assert issue.rule == "no-eval"
        assert issue.severity == "error"
        assert issue.tool == TOOL_NAME
        assert (issue.line, issue.column) == (1, 14)
        assert issue.suggestion

    def test_detect_sql_injection(self):
        code = '''def get_user(username):
    query = "SELECT * FROM users WHERE name = '" + username + "'"
    cursor.execute(query)
'''
        issues = PatternSecurityScanner().scan_file("test.py", code)
        sql_issues = [i for i in issues if i.rule == "sql-injection"]
        assert len(sql_issues) == 1
        assert sql_issues[0].line == 2
        assert "injection" in sql_issues[0].message.lower()

    def test_detect_command_injection_in_python(self):
        code = "def run_command(cmd):\n    os.system(cmd)\n"
        assert "command-injection" in rules(PatternSecurityScanner().scan_file("run.py", code))

    def test_python_patterns_skip_javascript(self):
        code = "os.system(cmd)\nprint('debug')\n"
        assert PatternSecurityScanner().scan_file("run.ts", code) == []

    def test_javascript_patterns_skip_python(self):
        code = "el.innerHTML = html\nconsole.log(x)\n"
        assert PatternSecurityScanner().scan_file("view.py", code) == []

    def test_weak_random(self):
        assert "no-weak-random" in rules(PatternSecurityScanner().scan_file("a.js", "const id = Math.random();"))
        assert "no-weak-random" in rules(PatternSecurityScanner().scan_file("a.py", "n = random.randint(1, 6)"))

    def test_unsafe_deserialization(self):
        code = "data = pickle.loads(blob)\ncfg = yaml.load(text)\nok = yaml.load(text, Loader=SafeLoader)\n"
        issues = [i for i in PatternSecurityScanner().scan_file("load.py", code) if i.rule == "unsafe-deserialization"]
        assert [i.line for i in issues] == [1, 2]

    def test_hardcoded_credentials_in_any_file(self):
        issues = PatternSecurityScanner().scan_file("deploy.env", 'API_TOKEN = "abcdef123"')
        assert rules(issues) == {"no-hardcoded-credentials"}

    def test_every_match_is_reported(self):
        issues = PatternSecurityScanner().scan_file("a.ts", "console.log(a); console.log(b);")
        assert [(i.rule, i.column) for i in issues] == [("no-console", 1), ("no-console", 17)]
        assert all(i.category == "maintainability" for i in issues)

    def test_debug_statements(self):
        assert "no-debugger" in rules(PatternSecurityScanner().scan_file("a.ts", "  debugger;"))
        assert "no-debugger" in rules(PatternSecurityScanner().scan_file("a.py", "    breakpoint()"))

    def test_insecure_request(self):
        issues = PatternSecurityScanner().scan_file("a.py", "r = requests.get('http://example.com')")
        assert "no-insecure-requests" in rules(issues)

    def test_clean_code(self):
        code = "export function add(a: number, b: number): number {\n  return a + b;\n}\n"
        assert PatternSecurityScanner().scan_file("math.ts", code) == []

    def test_extra_patterns(self):
        todo = SecurityPattern(re.compile(r"FIXME"), "no-fixme", "FIXME left in code", "info", "maintainability", "Resolve it")
        scanner = PatternSecurityScanner(extra_patterns=[todo])
        assert rules(scanner.scan_file("a.go", "// FIXME later")) == {"no-fixme"}

    def test_scan_files_stats(self):
        scanner = PatternSecurityScanner()
        issues, stats = scanner.scan_files({"a.ts": "eval(x)\nfoo()", "b.py": "x = 1"})
        assert rules(issues) == {"no-eval"}
        assert stats == {"patterns": len(scanner.patterns), "filesScanned": 2, "totalLinesScanned": 3}
