import os
import tempfile

# must be set before the app module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOAD_FOLDER"] = tempfile.mkdtemp(prefix="job-board-uploads-")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("NOTIFICATION_BACKEND", "memory")
