from .job_submitter import JobSubmitter, infer_content_kind, content_type_hint

__all__ = [
    'JobSubmitter',
    'infer_content_kind',
    'content_type_hint'
]
