from tenxdev.models.content import ContentModel
from tenxdev.models.gitsync import GitSyncModel
from tenxdev.models.saved_items import SavedItemModel

__all__ = ["ContentModel", "GitSyncModel", "SavedItemModel"]
