from enum import Enum


class SharePermission(str, Enum):
    """Capabilities a share record declares.

    Records always carry exactly LIST and READ. The field exists for forward
    compatibility only; enforcement lives in the executor, which implements
    no other verbs, so a tampered record cannot widen access.
    """

    list = "LIST"
    read = "READ"


SHARE_PERMISSIONS: tuple[SharePermission, ...] = (SharePermission.list, SharePermission.read)
