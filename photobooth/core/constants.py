"""Fixed design constants of the two-shot session."""

APP_NAME = "photobooth"
VERSION = "1.0.0"

SHOT_COUNT = 2
COUNTDOWN_TICKS = 3
COUNTDOWN_INTERVAL_S = 1.0

PROMPT_IDLE = "Press start to begin the photo session"
PROMPT_FIRST_SHOT = "Position your face in the frame to take a photo"
PROMPT_SECOND_SHOT = "Now make a face and take a second photo"
PROMPT_COMPLETED = "Congratulations! You have completed the photo session."
PROMPT_CAPTURE_FAILED = "Could not take the photo, please hold still and try again"
PROMPT_PROCESSING_FAILED = "Could not process the photo, please try again"

# Landmark group names produced by the face oracle
LEFT_EYE = "left_eye"
RIGHT_EYE = "right_eye"
NOSE_CREST = "nose_crest"
FACE_CONTOUR = "face_contour"

SUPPORTED_IMAGE_FORMATS = (".png", ".jpg", ".jpeg")
