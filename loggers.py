import logging

from config import LOG_LEVEL

logging.basicConfig(format="%(asctime)s %(name)s %(levelname)s %(message)s")


def setup_server_logger(log_level=LOG_LEVEL):
    '''
    Logger for the HTTP routes in main.py
    '''
    logger = logging.getLogger('server')
    logger.setLevel(log_level)
    return logger


def setup_supabase_logger(log_level=LOG_LEVEL):
    '''
    Logger for table access and realtime events
    '''
    logger = logging.getLogger('supabase_tables')
    logger.setLevel(log_level)
    return logger


def setup_gpt_logger(log_level=LOG_LEVEL):
    logger = logging.getLogger('gpt')
    logger.setLevel(log_level)
    return logger
