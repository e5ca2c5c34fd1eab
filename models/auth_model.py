from pydantic import BaseModel

class TokenData(BaseModel):
    """Claims the chat service reads from an access token"""
    user_id: str
