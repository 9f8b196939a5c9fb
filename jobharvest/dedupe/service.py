from __future__ import annotations

from jobharvest.core.models import JobPreview
from jobharvest.utils.text import canonicalize_url


class DedupeService:
    @staticmethod
    def keys_for(preview: JobPreview) -> list[str]:
        """Identity keys of a preview: its source id when present, always its URL."""
        keys = [f"url:{canonicalize_url(preview.job_url)}"]
        if preview.job_id:
            keys.insert(0, f"id:{preview.job_id.strip()}")
        return keys
