# ruff: noqa: ERA001

"""Config module dataclasses."""

from dataclasses import dataclass, field


@dataclass
class Face:
    """Face region estimation settings."""

    sample_stride: int = 4             # Sample every Nth pixel on both axes in the skin-tone fallback
    min_skin_fraction: float = 0.05    # Minimum share of sampled pixels classified as skin
    confidence_scale: float = 0.1      # Confidence = skin_count / (sampled * scale), capped at 1
    face_width_ratio: float = 0.35     # Fallback face box width as a fraction of frame width
    face_height_ratio: float = 0.5     # Fallback face box height as a fraction of frame height
    external_default_confidence: float = 0.8  # Used when an external detector reports no score


@dataclass
class HeadPose:
    """Head pose estimation from face box position."""

    yaw_range_deg: float = 45.0        # Yaw reached at the normalized edge
    pitch_range_deg: float = 35.0      # Pitch reached at the normalized edge
    normalize_span: float = 0.6        # Fraction of the half-frame mapped to [-1, 1]
    smoothing_factor: float = 0.3      # Lerp factor toward the new pose (1.0 disables smoothing)


@dataclass
class Pupil:
    """Pupil detection settings."""

    min_radius: int = 3                # Smallest pupil radius searched (frame px)
    max_radius: int = 25               # Largest pupil radius searched (frame px)
    dark_threshold: int = 80           # Brightness below which a pixel counts as pupil-dark
    grid_step: int = 2                 # Candidate centre spacing in the coarse scan (px)
    radius_step: int = 2               # Radius spacing in the coarse scan (px)
    circumference_samples: int = 24    # Samples on each candidate circle (every 15 degrees)
    boundary_gap: int = 2              # Ring offset used for the boundary consistency term
    boundary_contrast: float = 10.0    # Ring must be this much brighter than the circle
    refine_window: int = 2             # +/- px searched around the best coarse centre

    # Score weights for the dark-circle scan (sum to 1)
    weight_dark_ratio: float = 0.45
    weight_darkness: float = 0.25
    weight_boundary: float = 0.30

    contrast_boost: float = 1.5        # (v - 128) * boost + 128 before scanning
    blur_kernel: int = 3               # Gaussian blur kernel size, 0 disables

    confidence_floor: float = 0.3      # Candidates below this are discarded in fusion
    partial_skip_ratio: float = 0.3    # Top share of the eye region ignored by the partial scan

    use_dark_circle_method: bool = True  # Full-region dark-circle scan
    use_edge_method: bool = True       # Sobel + Hough circles
    use_color_method: bool = True      # HSV dark blob + circularity
    use_partial_method: bool = True    # Dark-circle scan without the eyelid band

    hough_param1: float = 60.0         # Canny upper threshold inside HoughCircles
    hough_param2: float = 12.0         # Accumulator threshold inside HoughCircles
    color_max_saturation: int = 120    # HSV saturation (0..255) above which a dark pixel is not pupil

    # Anatomical eye boxes as fractions of the face box
    eye_band_top: float = 0.25
    eye_band_bottom: float = 0.45
    left_eye_x0: float = 0.15
    left_eye_x1: float = 0.40
    right_eye_x0: float = 0.60
    right_eye_x1: float = 0.85

    adaptive_resolution: bool = True   # Downscale the working image when over budget
    frame_budget_s: float = 0.033      # Time budget for detection per frame
    scale_step: float = 0.75           # Multiplier applied per over-budget frame
    min_scale: float = 0.25            # Lower bound for the working scale


@dataclass
class Stabilizer:
    """Gaze stabilization settings (pixel values are in sensor px)."""

    history_size: int = 10             # Ring buffer length per eye and for accepted points
    smoothing_alpha: float = 0.3       # EMA weight of the newest sample
    smoothing_enabled: bool = True     # False passes accepted samples through unchanged

    min_jump_px: float = 250.0         # Lower clamp of the adaptive outlier threshold
    max_jump_px: float = 500.0         # Upper clamp of the adaptive outlier threshold
    jump_gain: float = 5.0             # Threshold = min_jump + gain * average recent step
    reanchor_after: int = 5            # Consecutive rejections before history is reset

    stability_window: int = 3          # Detections used for the displacement stability score
    stability_scale_px: float = 50.0   # Average displacement at which stability reaches 0


@dataclass
class Gate:
    """Multi-criterion fixation gate used by calibration."""

    accuracy_threshold_px: float = 50.0  # (a) and (g): per-sample distance bound
    window_s: float = 1.5                # Sliding window length
    min_samples: int = 10                # (b) samples required inside the window
    mean_ratio: float = 0.8              # (c) window mean < ratio * threshold
    max_std_px: float = 25.0             # (d) std of window distances
    jump_step_px: float = 30.0           # (e) a step larger than this counts as a jump
    max_jump_ratio: float = 0.2          # (e) allowed share of jumps
    trend_tolerance_px: float = 5.0      # (f) second-half mean may exceed first-half by this
    recent_count: int = 5                # (g) most recent samples checked individually


@dataclass
class Calibration:
    """Calibration procedure settings."""

    point_mode: str = "nine"             # "nine" or "thirteen"
    margin: float = 0.1                  # Distance of outer points from the screen edge
    required_stable_s: float = 1.0       # Stable fixation time needed per point
    fast_track_ratio: float = 0.5        # Distance below ratio * threshold shortens the wait
    fast_track_factor: float = 0.6       # Required time multiplier when fast-tracked
    burst_samples: int = 5               # Samples recorded when a point completes
    settle_delay_s: float = 0.8          # Pause between a completed point and the next one
    timeout_factor: float = 4.0          # Point is force-advanced after factor * required time
    min_points: int = 4                  # Points with samples needed for a fit
    min_sample_confidence: float = 0.3   # Samples below this are not recorded
    gate_reference: str = "fixation"     # "fixation" (window mean) or "target"

    validate: bool = True                # Run the accuracy test after fitting
    validation_margin: float = 0.15      # Test grid at margin / 0.5 / 1 - margin
    validation_lead_in_s: float = 1.0    # Settle time before measuring a test point
    validation_duration_s: float = 2.0   # Measurement time per test point
    validation_gap_s: float = 0.5        # Pause between test points
    distance_scale_px: float = 200.0     # Mean distance at which the distance score reaches 0
    dispersion_scale_px: float = 100.0   # Std at which the dispersion score reaches 0

    accuracy_threshold: float = 0.7      # Below this, recalibration is recommended
    skipped_validation_accuracy: float = 0.7  # Overall accuracy assumed when the test is skipped
    profile_version: str = "1.0"


@dataclass
class Dwell:
    """Continuous dwell selection."""

    dwell_time_s: float = 1.0            # Fixation time required to select
    selecting_ratio: float = 0.5         # Progress at which HOVERING becomes SELECTING
    min_confidence: float = 0.3          # Gaze below this counts as "no target"


@dataclass
class Zone:
    """Head-pose zone selection."""

    grid_size: int = 3
    dwell_time_s: float = 1.0
    yaw_threshold_deg: float = 8.0
    pitch_threshold_deg: float = 6.0
    confidence_threshold: float = 0.4
    hysteresis_deg: float = 0.0          # Extra angle needed to leave a zone (0 = none)
    rearm_on_exit: bool = True           # A selected zone must be left before it can fire again
    history_size: int = 10               # Selection history kept for statistics


@dataclass
class Baseline:
    """Eye movement relative to a captured resting position."""

    sensitivity: float = 3.0             # Multiplier applied to pupil offsets from the baseline
    min_sensitivity: float = 0.5
    max_sensitivity: float = 10.0
    micro_movement_px: float = 2.0       # Movements above this magnitude are logged


@dataclass
class LearningLog:
    """Detected vs. intended zone log kept for offline model training."""

    max_sessions: int = 100              # Archived sessions kept in memory, oldest dropped
    volume_target: int = 10              # Labeled events for a full data-volume score
    accuracy_target: float = 70.0        # Accuracy (%) for a full accuracy score
    face_confidence: float = 0.8         # Some event must exceed this for the face-quality score
    gaze_confidence: float = 0.7         # Some event must exceed this for the gaze-quality score


@dataclass
class Pipeline:
    """Per-frame pipeline settings."""

    viewport_width: int = 1280
    viewport_height: int = 720
    selection_mode: str = "dwell"        # "dwell" or "zone"
    low_confidence: float = 0.3          # Gaze confidence below this is flagged
    debug_frames: bool = False           # Attach a DebugFrame to every result


@dataclass
class RootConfig:
    """Root configuration containing all modules."""

    face: Face = field(default_factory=Face)
    head_pose: HeadPose = field(default_factory=HeadPose)
    pupil: Pupil = field(default_factory=Pupil)
    stabilizer: Stabilizer = field(default_factory=Stabilizer)
    gate: Gate = field(default_factory=Gate)
    calibration: Calibration = field(default_factory=Calibration)
    dwell: Dwell = field(default_factory=Dwell)
    zone: Zone = field(default_factory=Zone)
    baseline: Baseline = field(default_factory=Baseline)
    learning: LearningLog = field(default_factory=LearningLog)
    pipeline: Pipeline = field(default_factory=Pipeline)
