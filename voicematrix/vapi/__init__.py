from voicematrix.vapi.client import VapiClient, VoiceProvider

__all__ = ["VapiClient", "VoiceProvider"]
