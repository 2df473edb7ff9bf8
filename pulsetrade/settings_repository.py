# pulsetrade/settings_repository.py
import logging
from typing import Dict, Optional
from pulsetrade.setting import Setting

logger = logging.getLogger(__name__)

class SettingsRepository:
    """
    Repository for Setting key/value pairs
    """
    def __init__(self, db):
        self.db = db
        
    def get_value(self, key: str) -> Optional[str]:
        session = self.db.get_session()
        try:
            setting = session.query(Setting).filter(Setting.key == key).first()
            return setting.value if setting else None
        except Exception as e:
            logger.error(f"Error reading setting {key}: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_all_values(self) -> Dict[str, str]:
        session = self.db.get_session()
        try:
            return {setting.key: setting.value for setting in session.query(Setting).all()}
        finally:
            session.close()
            
    def save_value(self, key: str, value: str) -> None:
        """
        Insert or overwrite a setting, last writer wins
        """
        session = self.db.get_session()
        try:
            setting = session.query(Setting).filter(Setting.key == key).first()
            if setting:
                setting.value = value
            else:
                session.add(Setting(key=key, value=value))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error saving setting {key}: {str(e)}")
            raise
        finally:
            session.close()
