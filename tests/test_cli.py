"""
Tests for the command-line entry point.
"""

import json

from cyclegen.generate import main


class TestCli:

    def test_reference_scenario_json(self, capsys):
        code = main(['--seed', '12345', '--max-depth', '1', '--max-insertions', '2',
                     '--root', 'TwoAlternativePaths', '--sub', 'TwoAlternativePaths', '--json'])
        assert code == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats['nodes'] == 12
        assert stats['edges'] == 14

    def test_text_report(self, capsys):
        code = main(['--seed', '3', '--strategy', 'tree', '--max-nodes', '20'])
        assert code == 0
        out = capsys.readouterr().out
        assert "Cycles:" in out
        assert "STATISTICS" in out
        assert "valid: True" in out

    def test_invalid_settings_exit_code(self):
        assert main(['--max-depth', '-1']) == 1
