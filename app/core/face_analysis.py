import numpy as np
import logging
from typing import List, Optional, Tuple

from app.core.face_detection import center_sample_region, detect_faces
from app.core.overlay import draw_boxes
from app.models.enums import Priority, Severity
from app.models.responses import (
    BoundingBox,
    DetectedProblem,
    FaceAnalysisResult,
    Treatment,
    VisualMetric,
)
from app.utils.image_processing import opencv_to_base64

# Logger setup
logger = logging.getLogger(__name__)

OPAQUE_ALPHA = 128


def average_color(image: np.ndarray, box: BoundingBox) -> Optional[Tuple[float, float, float]]:
    """
    Average (red, green, blue) inside a box.

    On a BGRA image only pixels with alpha above 128 are counted.

    Returns:
        tuple: mean channel values, or None when the box holds no counted pixel
    """
    height, width = image.shape[:2]
    x1 = max(0, int(box.x))
    y1 = max(0, int(box.y))
    x2 = min(width, int(box.x + box.width))
    y2 = min(height, int(box.y + box.height))

    pixels = image[y1:y2, x1:x2].reshape(-1, image.shape[2])
    if pixels.shape[1] == 4:
        pixels = pixels[pixels[:, 3] > OPAQUE_ALPHA]
    if len(pixels) == 0:
        return None

    blue, green, red = pixels[:, :3].mean(axis=0)
    return float(red), float(green), float(blue)


def calculate_redness_percentage(red: float, green: float, blue: float) -> int:
    """Dominance of red over the other channels, normalized above the 1/3 baseline."""
    total = red + green + blue
    if total == 0:
        return 0

    red_ratio = red / total
    normalized = max(0.0, (red_ratio - 0.33) / 0.33)
    return min(100, round(normalized * 100))


def calculate_yellowness_percentage(red: float, green: float, blue: float) -> int:
    """Dominance of red+green over blue, normalized above the 1/2 baseline."""
    yellow = (red + green) / 2
    total = yellow + blue
    if total == 0:
        return 0

    yellow_ratio = yellow / total
    normalized = max(0.0, (yellow_ratio - 0.5) / 0.5)
    return min(100, round(normalized * 100))


def analyze_skin_tone(red: float, green: float, blue: float) -> str:
    brightness = (red + green + blue) / 3
    redness = calculate_redness_percentage(red, green, blue)
    yellowness = calculate_yellowness_percentage(red, green, blue)

    if redness > 60:
        return "High redness detected - may indicate inflammation or irritation"
    elif yellowness > 70:
        return "High yellowness detected - may indicate jaundice or liver-related issues"
    elif brightness < 80:
        return "Darker skin tone detected - normal variation"
    elif brightness > 200:
        return "Lighter skin tone detected - normal variation"
    return "Normal skin tone detected"


def analyze_skin_problems(redness: int, yellowness: int) -> List[DetectedProblem]:
    """
    Map color percentages to detected problems.

    Args:
        redness: redness percentage (0-100)
        yellowness: yellowness percentage (0-100)

    Returns:
        list: detected problems; never empty
    """
    problems = []

    if redness > 70:
        problems.append(DetectedProblem(
            type="Severe Inflammation",
            severity=Severity.SEVERE,
            description="High levels of redness detected, indicating possible severe inflammation, acute dermatitis, or allergic reaction. This may be accompanied by swelling, pain, or burning sensation.",
            confidence=0.85
        ))
    elif redness > 50:
        problems.append(DetectedProblem(
            type="Moderate Inflammation",
            severity=Severity.MODERATE,
            description="Moderate redness detected, suggesting inflammation, irritation, or possible rosacea. This could be due to sun exposure, skincare products, or underlying skin conditions.",
            confidence=0.75
        ))
    elif redness > 30:
        problems.append(DetectedProblem(
            type="Mild Irritation",
            severity=Severity.MILD,
            description="Mild redness detected, which may indicate minor skin irritation, sensitivity, or recent sun exposure. This is often temporary and may resolve on its own.",
            confidence=0.65
        ))

    if yellowness > 60:
        problems.append(DetectedProblem(
            type="Possible Jaundice",
            severity=Severity.SEVERE,
            description="Significant yellowness detected in the skin, which may indicate jaundice - a condition often related to liver dysfunction, bile duct problems, or blood disorders. Immediate medical consultation is recommended.",
            confidence=0.8
        ))
    elif yellowness > 40:
        problems.append(DetectedProblem(
            type="Mild Yellowing",
            severity=Severity.MODERATE,
            description="Moderate yellowness detected, which could indicate early signs of jaundice, carotenemia (excess beta-carotene), or certain medications' side effects.",
            confidence=0.7
        ))
    elif yellowness > 25:
        problems.append(DetectedProblem(
            type="Slight Discoloration",
            severity=Severity.MILD,
            description="Slight yellowish tint detected, which may be due to natural skin tone variation, lighting conditions, or dietary factors (high carotene intake).",
            confidence=0.6
        ))

    if redness > 40 and yellowness > 30:
        problems.append(DetectedProblem(
            type="Mixed Skin Discoloration",
            severity=Severity.MODERATE,
            description="Both redness and yellowness detected, suggesting possible complex skin condition, medication side effects, or multiple underlying issues requiring professional evaluation.",
            confidence=0.7
        ))

    if not problems:
        problems.append(DetectedProblem(
            type="Normal Skin Appearance",
            severity=Severity.MILD,
            description="Skin color appears within normal ranges. No significant discoloration or inflammation detected. Continue with regular skincare routine.",
            confidence=0.9
        ))

    return problems


def generate_treatment_recommendations(problems: List[DetectedProblem]) -> List[Treatment]:
    """Treatments for a list of detected problems; general advice is always last."""
    treatments = []
    problem_types = [p.type for p in problems]

    def any_type(*words: str) -> bool:
        return any(word in t for t in problem_types for word in words)

    if any_type("Inflammation", "Irritation"):
        treatments.extend([
            Treatment(
                category="Immediate Care",
                recommendation="Apply cool compresses for 10-15 minutes several times daily to reduce inflammation. Avoid hot water and harsh skincare products.",
                priority=Priority.HIGH,
                timeframe="Start immediately"
            ),
            Treatment(
                category="Skincare",
                recommendation="Use gentle, fragrance-free moisturizers and cleansers. Consider products with aloe vera, chamomile, or niacinamide to soothe irritation.",
                priority=Priority.HIGH,
                timeframe="Daily routine"
            ),
            Treatment(
                category="Lifestyle",
                recommendation="Identify and avoid potential triggers (new skincare products, detergents, foods). Protect skin from sun exposure with SPF 30+ sunscreen.",
                priority=Priority.MEDIUM,
                timeframe="Ongoing"
            ),
        ])

    if any_type("Severe", "Jaundice"):
        treatments.extend([
            Treatment(
                category="Medical Consultation",
                recommendation="Schedule an appointment with a dermatologist or healthcare provider within 24-48 hours for proper diagnosis and treatment plan.",
                priority=Priority.HIGH,
                timeframe="Within 1-2 days"
            ),
            Treatment(
                category="Monitoring",
                recommendation="Document symptoms with photos and notes. Monitor for changes in color, size, or associated symptoms like itching, pain, or fever.",
                priority=Priority.HIGH,
                timeframe="Daily until seen by doctor"
            ),
        ])

    if any_type("Jaundice"):
        treatments.extend([
            Treatment(
                category="Urgent Medical Care",
                recommendation="Seek immediate medical attention. Jaundice can indicate serious liver or blood conditions requiring prompt treatment.",
                priority=Priority.HIGH,
                timeframe="Immediately"
            ),
            Treatment(
                category="Preparation for Medical Visit",
                recommendation="Prepare a list of all medications, supplements, and recent dietary changes. Note any associated symptoms like fatigue, abdominal pain, or dark urine.",
                priority=Priority.HIGH,
                timeframe="Before medical appointment"
            ),
        ])

    if any_type("Normal", "Mild"):
        treatments.extend([
            Treatment(
                category="Prevention",
                recommendation="Maintain a consistent skincare routine with gentle cleansing, moisturizing, and daily sun protection to prevent future skin issues.",
                priority=Priority.MEDIUM,
                timeframe="Daily routine"
            ),
            Treatment(
                category="Nutrition",
                recommendation="Maintain a balanced diet rich in antioxidants (fruits, vegetables) and stay hydrated. Consider omega-3 supplements for skin health.",
                priority=Priority.LOW,
                timeframe="Ongoing lifestyle"
            ),
        ])

    treatments.append(Treatment(
        category="General Health",
        recommendation="Regular health check-ups can help detect underlying conditions early. Keep a skin diary to track changes over time.",
        priority=Priority.LOW,
        timeframe="Schedule annually"
    ))

    return treatments


def measure_face(color: Tuple[float, float, float], face_index: int) -> VisualMetric:
    red, green, blue = color
    return VisualMetric(
        face_index=face_index,
        redness_percentage=calculate_redness_percentage(red, green, blue),
        yellowness_percentage=calculate_yellowness_percentage(red, green, blue),
        skin_tone_analysis=analyze_skin_tone(red, green, blue)
    )


def analyze_face_image(image: np.ndarray) -> FaceAnalysisResult:
    """
    Full face health analysis of a photo.

    1. detects faces (falls back to the centered sample region)
    2. measures redness/yellowness per face, skipping transparent pixels
    3. derives problems and treatments from the primary face
    4. draws the boxes into an annotated copy

    Args:
        image: OpenCV BGR or BGRA image

    Returns:
        FaceAnalysisResult: the analysis; face_detected is False when no
        face region holds an opaque pixel
    """
    height, width = image.shape[:2]
    color_image = np.ascontiguousarray(image[:, :, :3]) if image.shape[2] == 4 else image

    faces = detect_faces(color_image)
    if not faces:
        logger.info("Falling back to the centered sample region")
        faces = [center_sample_region(width, height)]

    measured = [(box, average_color(image, box)) for box in faces if box.width > 0 and box.height > 0]
    measured = [(box, color) for box, color in measured if color is not None]
    if not measured:
        logger.info("No opaque pixels inside the face regions")
        return FaceAnalysisResult(
            face_detected=False,
            faces_count=0,
            image_width=width,
            image_height=height
        )

    faces = [box for box, _ in measured]
    visual_metrics = [measure_face(color, index) for index, (_, color) in enumerate(measured)]

    primary = visual_metrics[0]
    problems = analyze_skin_problems(primary.redness_percentage, primary.yellowness_percentage)
    treatments = generate_treatment_recommendations(problems)

    annotated_image = opencv_to_base64(draw_boxes(color_image, faces), ".jpg", quality=80)

    logger.info(
        f"Face analysis done: {len(faces)} face(s), redness {primary.redness_percentage}%, "
        f"yellowness {primary.yellowness_percentage}%"
    )

    return FaceAnalysisResult(
        face_detected=True,
        faces_count=len(faces),
        faces=faces,
        visual_metrics=visual_metrics,
        problems_detected=problems,
        treatments=treatments,
        annotated_image=annotated_image,
        image_width=width,
        image_height=height
    )
