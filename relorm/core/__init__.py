"""Public core API: engine, model handle, entity declaration and conditions."""

from .cache import MemoryCache
from .changeset import ChangedValue, Operation
from .conditions import C, Condition, ConditionGroup, Criteria, NotCondition, OrderBy, WhereExpression
from .config import EngineConfig
from .descriptors import Field, JoinTable, ModelDescriptor, Permission, Polymorphic, Relation, RelationKind
from .engine import Engine
from .entity import Entity
from .errors import (
    AttributeNotFound,
    ColumnNotFound,
    DeleteNotFound,
    ForeignKeyNotFound,
    InfinityLoop,
    InstanceError,
    InvalidTag,
    JoinTableNotFound,
    MissingPrimary,
    NoBuilder,
    NoPrimaryKey,
    NotInitialized,
    NoValueProvided,
    OperationError,
    OrmError,
    ResultMustBeList,
    RowNotFound,
    SchemaError,
    SetCacheAfterInit,
    StrategyAlreadyRegistered,
    UnknownRelationTag,
    UnknownStrategy,
    UnsupportedPolymorphic,
    UpdateZeroRows,
    ValidationFailed,
)
from .model import Model
from .strategies import EagerLoading, Strategy, StrategyRegistry
from .wblist import Policy, WBList

__all__ = [
    "C",
    "Condition",
    "ConditionGroup",
    "NotCondition",
    "OrderBy",
    "WhereExpression",
    "Criteria",
    "Engine",
    "EngineConfig",
    "Entity",
    "Model",
    "MemoryCache",
    "Strategy",
    "StrategyRegistry",
    "EagerLoading",
    "Policy",
    "WBList",
    "ChangedValue",
    "Operation",
    "Field",
    "Relation",
    "RelationKind",
    "JoinTable",
    "Polymorphic",
    "Permission",
    "ModelDescriptor",
    "OrmError",
    "SchemaError",
    "NoPrimaryKey",
    "NoBuilder",
    "AttributeNotFound",
    "ColumnNotFound",
    "UnknownRelationTag",
    "InvalidTag",
    "ForeignKeyNotFound",
    "JoinTableNotFound",
    "UnsupportedPolymorphic",
    "UnknownStrategy",
    "StrategyAlreadyRegistered",
    "InstanceError",
    "NotInitialized",
    "SetCacheAfterInit",
    "ResultMustBeList",
    "MissingPrimary",
    "NoValueProvided",
    "OperationError",
    "RowNotFound",
    "DeleteNotFound",
    "UpdateZeroRows",
    "InfinityLoop",
    "ValidationFailed",
]
