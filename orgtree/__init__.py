"""OrgTree access control and ownership transfer service."""
