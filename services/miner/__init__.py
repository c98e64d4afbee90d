from .settings_client import MinerSettings, MinerSettingsClient

__all__ = ['MinerSettings', 'MinerSettingsClient']
