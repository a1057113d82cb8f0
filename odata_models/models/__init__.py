"""
odata_models.models - Stateful entities and collections
========================================================

- ODataModel: one entity bound to its resource (fetch, save, destroy,
  relations, $ref links, bound operations)
- ODataCollection: one page of models with paging state and query options
- ModelRegistry: type name -> Model/Collection factories

"""

from odata_models.models.model import ODataModel, apply_patch
from odata_models.models.collection import ODataCollection, PageState
from odata_models.models.registry import ModelRegistry

__all__ = [
    "ODataModel",
    "apply_patch",
    "ODataCollection",
    "PageState",
    "ModelRegistry",
]
