from cvfolio.app.models.user import User
from cvfolio.app.models.cv_version import CVVersion
from cvfolio.app.models.cv_download import CVDownload
