"""OpenCV rendering of the camera overlay and slides."""
