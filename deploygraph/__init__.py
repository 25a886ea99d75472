from fast_depends import Depends

from .component import Component, ComponentDescriptor, ComponentInstance
from .deployer import Deployer
from .executor import Executor
from .graph import DependencyGraph
from .loader import ComponentLoader
from .reconciler import StateReconciler
from .state import FileStateStore, InMemoryStateStore, StateStore, ValkeyStateStore
from .status import InvocationOutcome, LoggingStatusSink, StatusSink
from .template import Template, load_template

__all__ = [
    "Depends",
    "Component",
    "ComponentDescriptor",
    "ComponentInstance",
    "ComponentLoader",
    "Deployer",
    "DependencyGraph",
    "Executor",
    "FileStateStore",
    "InMemoryStateStore",
    "InvocationOutcome",
    "LoggingStatusSink",
    "StateReconciler",
    "StateStore",
    "StatusSink",
    "Template",
    "ValkeyStateStore",
    "load_template",
]
