from storefront import config
from storefront.cms.base import CmsStorePort, download_image, upload_image_from_url
from storefront.errors import ConfigError


def get_cms(backend=None) -> CmsStorePort:
    """CMS store selected by CMS_BACKEND."""
    backend = (backend or config.CMS_BACKEND).lower()
    if backend == "sql":
        from storefront.cms.sql_store import SqlCmsStore
        from storefront.db import cms_engine
        return SqlCmsStore(cms_engine())
    if backend == "sanity":
        from storefront.cms.sanity_store import SanityCmsStore
        return SanityCmsStore()
    raise ConfigError(f"Unknown CMS backend: {backend}")


__all__ = ["get_cms", "CmsStorePort", "download_image", "upload_image_from_url"]
