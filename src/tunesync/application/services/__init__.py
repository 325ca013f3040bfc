"""Application services - presence resolution, uploading and library discovery."""
