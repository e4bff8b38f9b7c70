"""Application constants - all magic numbers centralized."""

# Accuracy bands (percent) driving adjustment type
ACCURACY_ADVANCE = 90     # >= 90: advance
ACCURACY_MAINTAIN = 70    # 70-89: maintain
ACCURACY_RETEACH = 50     # 50-69: reteach
# < 50: prerequisite

# Trajectory
TRAJECTORY_MIN_POINTS = 3
TRAJECTORY_WINDOW = 3     # recent window vs. the window before it
TRAJECTORY_DELTA = 5      # percentage points

# Performance history
ACCURACY_TREND_CAP = 10   # most recent accuracy values kept per metric
RECENT_SUBMISSIONS = 10   # submissions scanned for error patterns
MAX_ERROR_EXAMPLES = 3
DEFAULT_MATH_ACCURACY = 70

# Grouping
MIN_GROUP_SIZE = 2
MAX_GROUP_SIZE = 6
GROUP_VARIANCE_LIMIT = 400

# Adjustment queue
DEFAULT_ADJUSTMENT_PRIORITY = {
    "prerequisite": 9,
    "reteach": 7,
    "maintain": 5,
    "advance": 3,
}
RECOMMENDATION_PRIORITY = {
    "advance": 4,
    "maintain": 5,
    "reteach": 7,
    "prerequisite": 9,
}
ADJUSTMENT_TREND_SCORES = {
    "advance": 3,
    "maintain": 2,
    "reteach": 1,
    "prerequisite": 0,
}
TREND_WINDOW = 5
TREND_IMPROVING_SCORE = 2.5
TREND_STRUGGLING_SCORE = 1.0
MAX_ADJUSTMENTS_PER_BATCH = 5
ADJUSTMENTS_APPLIED_PER_LESSON = 5

# Data confidence
DEFAULT_ASSESSMENT_CONFIDENCE = 0.5
NO_STUDENT_CONFIDENCE = 0.3
LOW_CONFIDENCE = 0.3
PARTIAL_CONFIDENCE = 0.7
DEFAULT_LESSON_CONFIDENCE = 0.7

# Lesson types
LESSON_TYPES = ("individual", "group")
