SERVICE_NAME = "challenge-ingestor"
