"""PhotoLab PIN gate: access control for the photo-editing surface."""
