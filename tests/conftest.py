"""Shared fixtures for treetap unit tests."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
import yaml

from treetap.engine.node import TreeNode
from treetap.engine.protocols import ServiceContext
from treetap.engine.sim_device import SimDevice

SCREEN = (1080, 2400)

# ---------------------------------------------------------------------------
# Sample tree
# ---------------------------------------------------------------------------
#
# FrameLayout                                  [0, 0, 1080, 2400]
# ├── LinearLayout  #header                    [0, 0, 1080, 300]
# │   ├── TextView "Skip"                      [100, 100, 200, 140]
# │   └── ImageView #close desc="Close" (c)    [980, 40, 1060, 120]
# ├── ListView #list                           [0, 300, 1080, 2200]
# │   ├── LinearLayout (c)                     [0, 300, 1080, 500]
# │   │   ├── TextView "Item 1"
# │   │   └── CheckBox #check
# │   └── LinearLayout (c)                     [0, 500, 1080, 700]
# │       ├── TextView "Item 2"
# │       └── CheckBox #check (checked)
# └── Button #ok "OK" (c, lc)                  [400, 2250, 680, 2350]

SAMPLE_TREE: dict[str, Any] = {
    "class": "android.widget.FrameLayout",
    "bounds": [0, 0, 1080, 2400],
    "children": [
        {
            "class": "android.widget.LinearLayout",
            "id": "com.app:id/header",
            "bounds": [0, 0, 1080, 300],
            "children": [
                {"class": "android.widget.TextView", "text": "Skip", "bounds": [100, 100, 200, 140]},
                {
                    "class": "android.widget.ImageView",
                    "id": "com.app:id/close",
                    "desc": "Close",
                    "clickable": True,
                    "bounds": [980, 40, 1060, 120],
                },
            ],
        },
        {
            "class": "android.widget.ListView",
            "id": "com.app:id/list",
            "bounds": [0, 300, 1080, 2200],
            "children": [
                {
                    "class": "android.widget.LinearLayout",
                    "clickable": True,
                    "bounds": [0, 300, 1080, 500],
                    "children": [
                        {"class": "android.widget.TextView", "text": "Item 1", "bounds": [20, 320, 600, 380]},
                        {
                            "class": "android.widget.CheckBox",
                            "id": "com.app:id/check",
                            "checkable": True,
                            "bounds": [900, 350, 980, 430],
                        },
                    ],
                },
                {
                    "class": "android.widget.LinearLayout",
                    "clickable": True,
                    "bounds": [0, 500, 1080, 700],
                    "children": [
                        {"class": "android.widget.TextView", "text": "Item 2", "bounds": [20, 520, 600, 580]},
                        {
                            "class": "android.widget.CheckBox",
                            "id": "com.app:id/check",
                            "checkable": True,
                            "checked": True,
                            "bounds": [900, 550, 980, 630],
                        },
                    ],
                },
            ],
        },
        {
            "class": "android.widget.Button",
            "id": "com.app:id/ok",
            "text": "OK",
            "clickable": True,
            "longClickable": True,
            "bounds": [400, 2250, 680, 2350],
        },
    ],
}


@pytest.fixture
def sample_root() -> TreeNode:
    """A fresh copy of the sample tree."""
    return TreeNode.from_dict(copy.deepcopy(SAMPLE_TREE))


@pytest.fixture
def device(sample_root: TreeNode) -> SimDevice:
    return SimDevice(sample_root, screen=SCREEN)


@pytest.fixture
def context(device: SimDevice) -> ServiceContext:
    return device.context(seed=42)


# ---------------------------------------------------------------------------
# Fixture: files on disk
# ---------------------------------------------------------------------------

@pytest.fixture
def dump_file(tmp_path: Path) -> Path:
    """The sample tree written as a YAML tree dump."""
    path = tmp_path / "dump.yaml"
    path.write_text(
        yaml.safe_dump({"screen": {"width": SCREEN[0], "height": SCREEN[1]}, "root": SAMPLE_TREE}),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def sample_rules_yaml() -> str:
    """A valid rule file: the second rule matches nothing."""
    return """\
rules:
  - selector: 'text=Skip'
  - selector: 'id=missing'
    action: click
  - selector: '[id="com.app:id/ok"]'
    action: longClick
    fastQuery: true
"""


@pytest.fixture
def rules_file(tmp_path: Path, sample_rules_yaml: str) -> Path:
    path = tmp_path / "rules.yaml"
    path.write_text(sample_rules_yaml, encoding="utf-8")
    return path
