"""
Prompt Builder
Fixed instruction templates for each pipeline stage.

Image order matters: the templates refer to images by position
("the first provided image", "the third provided image"), so every builder
that takes images also returns them in the order the prompt expects.
"""
from typing import List, Optional, Tuple

from lookbook_studio.core.images import ImageRef


# ==================== STAGE 1: LOOKBOOK ====================

LOOKBOOK_TEMPLATE = """Create a fashion lookbook image on a pure white background.
Visual ideas: {visual_ideas}.
Context/Occasion: {occasion}.
IMPORTANT INSTRUCTIONS:
1. DO NOT include any people or characters in the image. ONLY show the clothing items, shoes, and accessories laid out or floating.
2. The background MUST be pure white.
3. Draw thin, elegant arrows pointing to 3-4 specific clothing details or accessories in the outfit.
4. Next to each arrow, write a short 2-4 word text label describing that specific detail in English.
5. Do not overlay any "event" or promotional text on the images. Only include brief, descriptive English text detailing the clothing items.
6. The style should be a professional fashion editorial or design sketch."""


def build_lookbook_prompt(visual_ideas: str, occasion: str = "") -> str:
    """User text is inserted as typed; an empty occasion stays empty."""
    return LOOKBOOK_TEMPLATE.format(visual_ideas=visual_ideas, occasion=occasion)


# ==================== STAGE 2: EXTRACTION ====================

POSE_SKETCH_PROMPT = (
    "Convert the uploaded image into a pencil sketch. Redraw the main character as an "
    "IKEA-style wooden mannequin. The mannequin must have NO visible joints on the elbows "
    "or knees, NO hair, and must be completely gender-neutral (sexless). IMPORTANT: The "
    "mannequin's face must accurately reflect the facial expression and emotions of the "
    "person in the original image. The purpose is to capture both the pose and the "
    "emotional state."
)

LOOKBOOK_EXTRACTION_PROMPT = (
    "Analyze the reference image and extract purely the clothing style, garments, and "
    "accessories. Generate a clean, photorealistic \"lookbook\" image focusing solely on "
    "these items laid out or floating on a pure white background. Do not include any "
    "people or characters."
)


# ==================== STAGE 3: MIXER ====================

HEAD_SWAP_PROMPT = (
    "Perform a Head Swap only. Use the first provided image (reference_image.png) as the "
    "foundational base image. Strictly preserve its exact body shape, background, lighting, "
    "and clothing. ONLY replace the head, face, and hair with the features from the second "
    "provided image (main_celebrity_ai_model.png). Completely IGNORE any sketches or "
    "lookbooks for this specific action."
)

FULL_GENERATION_PROMPT = (
    "Generate a new character from scratch. Apply the facial features from the third "
    "provided image (main_celebrity_ai_model.png), construct the posture strictly based on "
    "the second provided image (scene_draft.png), and dress the model using the garments "
    "from the first provided image (extracted_lookbook.png)."
)

ENVIRONMENT_BLOCK = (
    "\n\nEnvironment & Specific Details:\n{environment}\n\n"
    "Make sure to incorporate these environment and specific details into the final image, "
    "defining the setting and atmosphere around the combined model, pose, and lookbook."
)


def build_mixer_request(
    model: ImageRef,
    lookbook: Optional[ImageRef] = None,
    pose: Optional[ImageRef] = None,
    source: Optional[ImageRef] = None,
    environment: str = "",
    head_swap_only: bool = False
) -> Tuple[str, List[ImageRef]]:
    """
    Build the mixer prompt and its ordered images.

    Head swap: [source, model]
    Full generation: [lookbook, pose, model]

    Inputs are assumed validated by the caller.
    """
    if head_swap_only:
        prompt = HEAD_SWAP_PROMPT
        images = [source, model]
    else:
        prompt = FULL_GENERATION_PROMPT
        images = [lookbook, pose, model]

    if environment and environment.strip():
        prompt += ENVIRONMENT_BLOCK.format(environment=environment)

    return prompt, images


# ==================== STAGE 4: COMPOSITOR ====================

COMPOSITOR_TEMPLATE = (
    "Role: You are an Expert Environment Compositor. \n"
    "Your task is to perform a high-end photorealistic compositing task.\n"
    "1. Identify and isolate the complete character (the model, their pose, and clothing) "
    "from the first provided image (the subject). This character asset must remain unchanged "
    "in appearance.\n"
    "2. If a second image is provided (environment reference), utilize ONLY its scenery, "
    "background elements, lighting, and atmosphere. STRICTLY IGNORE and remove any humans, "
    "characters, or animals present in that reference image.\n"
    "3. Use the following text prompts to refine the mood, lighting, and scene details: "
    "\"{environment_details}\".\n"
    "4. Place the isolated character subject into the new targeted environment.\n"
    "5. ENSURE AN ORGANIC FIT: Re-light the character to match the new environment's "
    "lighting (e.g., color temperature, direction). Generate realistic cast shadows onto the "
    "new ground/objects. Adjust color grading to match the scene's atmosphere. Ensure correct "
    "perspective integration so the character appears physically grounded in the new "
    "location, not just pasted over it."
)


def build_compositor_request(
    subject: ImageRef,
    environment_ref: Optional[ImageRef] = None,
    environment_details: str = ""
) -> Tuple[str, List[ImageRef]]:
    """Subject first; the scenery reference is optional."""
    prompt = COMPOSITOR_TEMPLATE.format(environment_details=environment_details)
    images = [subject]
    if environment_ref is not None:
        images.append(environment_ref)
    return prompt, images
