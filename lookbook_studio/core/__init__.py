# Core module
from lookbook_studio.core.images import ImageRef
from lookbook_studio.core.session import (
    SessionState,
    SessionStore,
    SessionError,
    SessionNotFoundError,
    UnknownImageError,
    UPLOAD_SLOTS,
    get_session_store,
)
from lookbook_studio.core.validation import (
    ValidationError,
    validate_image_upload,
    validate_image_bytes,
    validate_file_size,
    validate_mime_type,
)
