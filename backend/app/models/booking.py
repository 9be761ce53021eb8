import enum


class ServiceType(str, enum.Enum):
    FACE_TO_FACE = "Face-to-Face"
    VIDEO = "Video Remote"
    TELEPHONE = "Telephone"
    TRANSLATION = "Translation"
    BSL = "BSL"


class LocationType(str, enum.Enum):
    ONSITE = "ONSITE"
    ONLINE = "ONLINE"


class GenderPreference(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    NONE = "None"
