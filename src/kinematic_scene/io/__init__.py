"""I/O for robot descriptions and renderer snapshots.

This module provides URDF parsing and export, conversion of a parsed robot
into document nodes, and ingest of the flat scene snapshot a renderer hands
over on startup.
"""

from .urdf_parser import ParseResult, UrdfRobot, load_urdf, parse_urdf_element, parse_urdf_string
from .urdf_export import ExportResult, export_robot_to_urdf
from .urdf_scene import import_urdf, robot_to_node_inputs
from .snapshot import snapshot_to_scene

__all__ = [
    "ParseResult",
    "UrdfRobot",
    "load_urdf",
    "parse_urdf_element",
    "parse_urdf_string",
    "ExportResult",
    "export_robot_to_urdf",
    "import_urdf",
    "robot_to_node_inputs",
    "snapshot_to_scene",
]
