import pytest

from safety_rules import DESTRUCTIVE_PATTERNS, assess_risk, is_destructive, warnings_for

DESTRUCTIVE = [
    ("hard reset", "git reset --hard HEAD~1", ["⚠️ This will discard all uncommitted changes"]),
    ("force clean", "git clean -fd", ["⚠️ This will delete untracked files permanently"]),
    ("force push", "git push --force origin main", ["⚠️ This will overwrite remote history"]),
    ("rebase", "git rebase main", ["⚠️ This will rewrite commit history"]),
    ("interactive rebase", "git rebase -i HEAD~3", ["⚠️ This will rewrite commit history"]),
    ("cherry-pick", "git cherry-pick abc123", ["⚠️ This may create conflicts"]),
    ("no-ff merge", "git merge --no-ff feature", ["⚠️ This will create a merge commit"]),
    ("upper case", "GIT RESET --HARD", ["⚠️ This will discard all uncommitted changes"]),
]

SAFE = [
    ("soft reset", "git reset --soft HEAD~1"),
    ("status", "git status"),
    ("log", "git log --oneline -5"),
    ("plain push", "git push origin main"),
    ("ff merge", "git merge feature"),
    ("empty", ""),
]


@pytest.mark.parametrize("label,cmd,expected", DESTRUCTIVE, ids=[c[0] for c in DESTRUCTIVE])
def test_destructive(label, cmd, expected):
    assert is_destructive(cmd)
    assert warnings_for(cmd) == expected
    assert assess_risk(cmd) == "destructive"


@pytest.mark.parametrize("label,cmd", SAFE, ids=[c[0] for c in SAFE])
def test_safe(label, cmd):
    assert not is_destructive(cmd)
    assert warnings_for(cmd) == []
    assert assess_risk(cmd) == "safe"


def test_all_matches_collected_in_table_order():
    # rebase + push --force в одной строке - оба предупреждения, порядок как в таблице
    cmd = "git push --force && git rebase main"
    assert warnings_for(cmd) == [
        "⚠️ This will overwrite remote history",
        "⚠️ This will rewrite commit history",
    ]


def test_table_has_six_patterns():
    assert [p for p, _ in DESTRUCTIVE_PATTERNS] == [
        "reset --hard", "clean -f", "push --force", "rebase", "cherry-pick", "merge --no-ff",
    ]
