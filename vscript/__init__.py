"""
vscript - node-based behavior graph interpreter

Entities in a scene get behavior graphs: node instances wired together
through named ports. The host ticks the ScriptEngine once per frame; event
nodes start each traversal and connections decide what runs next and which
values flow where. Graphs round-trip through a portable form that project
files embed.
"""

from .engine import ScriptEngine
from .entity import CollisionEvent, Entity, Vector3
from .graph import BehaviorGraph, ExecutionContext, NodeRegistry

__version__ = "0.1.0"

__all__ = [
    'ScriptEngine',
    'CollisionEvent',
    'Entity',
    'Vector3',
    'BehaviorGraph',
    'ExecutionContext',
    'NodeRegistry',
]
