import os
import tempfile

# Keep the API module's singleton service away from files in the working directory
_data_dir = tempfile.mkdtemp(prefix="flashdeck-tests-")
os.environ.setdefault("FLASHDECK_DATA", os.path.join(_data_dir, "flashcards.csv"))
os.environ.setdefault("FLASHDECK_SETTINGS", os.path.join(_data_dir, "settings.json"))
