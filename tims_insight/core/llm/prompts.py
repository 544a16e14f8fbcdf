"""
Prompt templates for the TIMS room-temperature assistant.

All text is Indonesian; the model is asked for at most two sentences.
"""
from typing import Any, Dict, List

SYSTEM_INSTRUCTION_TEXT = " ".join([
    "Anda adalah TIMS AI yang membantu penghuni memahami kondisi ruangan berbasis suhu.",
    "Selalu jawab dalam Bahasa Indonesia baku, maksimal dua kalimat (<= 60 kata).",
    "Fokus pada kenyamanan, risiko singkat, dan tindakan praktis. Hindari pengantar atau penutup panjang.",
])


def build_system_instruction(extra: str = "") -> Dict[str, Any]:
    """System instruction block in the generateContent wire format."""
    text = f"{SYSTEM_INSTRUCTION_TEXT} {extra}".strip() if extra else SYSTEM_INSTRUCTION_TEXT
    return {"role": "system", "parts": [{"text": text}]}


def build_temperature_prompt(temperature: float) -> str:
    """Instructional prompt embedding the reading formatted to one decimal."""
    return "\n".join([
        "Anda adalah TIMS AI, asisten yang memantau kondisi ruangan berbasis sensor suhu.",
        f"Data terbaru menunjukkan suhu ruangan {temperature:.1f}°C.",
        "Tuliskan analisis ringkas dalam Bahasa Indonesia maksimal dua kalimat (<= 60 kata):",
        "- jelaskan kondisi kenyamanan ruangan dan kategori suhunya (normal, hangat, panas, atau dingin),",
        "- beri saran tindakan sederhana bila diperlukan,",
        "- jika suhu berada di bawah 18°C atau di atas 30°C, sertakan peringatan singkat.",
        "Jangan menyebut diri sebagai AI dan jangan menambahkan penutup yang tidak perlu.",
    ])


def user_contents(prompt: str) -> List[Dict[str, Any]]:
    """A single user turn."""
    return [{"role": "user", "parts": [{"text": prompt}]}]
