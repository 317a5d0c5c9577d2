PROJECT_NAME = "Laborobo-AI Server"
API_V1_STR = "/api/v1"
